"""Concept → canonical metric mappings for every provider.

Filers and data vendors disagree about which tag carries a given number
("Revenues" vs "RevenueFromContractWithCustomerExcludingAssessedTax", "netReceivables" vs
"accountsReceivables" ...).  Each canonical metric therefore maps to an
ordered list of alternatives; earlier entries win where the lookup is
first-match, later ones win where the lookup is most-recently-filed.

Three tables:
  SEC_METRICS: XBRL companyfacts concepts (taxonomy + units + mode)
  FMP_FIELDS: Financial Modeling Prep JSON field names per statement
  FINNHUB_CONCEPTS: Finnhub financials-reported concept ids per section
"""

from __future__ import annotations

from typing import Literal, NamedTuple

from tenbagger.models import ConceptConfig

Mode = Literal["instant", "duration"]

# Currency units accepted for monetary concepts, canonical first
USD_UNITS = ["USD", "USDm", "USDth"]
SHARE_UNITS = ["shares", "sharesm"]


class MetricSpec(NamedTuple):
    configs: list[ConceptConfig]
    mode: Mode


def _usd(*concepts: str) -> list[ConceptConfig]:
    return [ConceptConfig(taxonomy="us-gaap", concepts=list(concepts), units=USD_UNITS)]


# ═══════════════════════════════════════════════════════════════════════════
#  SEC EDGAR companyfacts
#  Income and cash-flow items are durations (may arrive year-to-date);
#  balance-sheet items are instants.
# ═══════════════════════════════════════════════════════════════════════════

REVENUE = MetricSpec(
    _usd(
        "Revenues",
        "SalesRevenueNet",
        "RevenueFromContractWithCustomerExcludingAssessedTax",
    ),
    "duration",
)

SEC_METRICS: dict[str, MetricSpec] = {
    "gross_profit": MetricSpec(_usd("GrossProfit"), "duration"),
    "sga": MetricSpec(
        _usd(
            "SellingGeneralAndAdministrativeExpense",
            "SellingGeneralAndAdministrativeExpenseValueAdded",
        ),
        "duration",
    ),
    "rnd": MetricSpec(_usd("ResearchAndDevelopmentExpense"), "duration"),
    "ocf": MetricSpec(
        _usd(
            "NetCashProvidedByUsedInOperatingActivities",
            "NetCashProvidedByUsedInOperatingActivitiesContinuingOperations",
        ),
        "duration",
    ),
    "capex": MetricSpec(
        _usd(
            "PaymentsToAcquirePropertyPlantAndEquipment",
            "CapitalExpenditures",
            "PurchaseOfFixedAssets",
        ),
        "duration",
    ),
    "inventory": MetricSpec(_usd("InventoryNet"), "instant"),
    "receivables": MetricSpec(
        _usd(
            "AccountsReceivableNetCurrent",
            "AccountsReceivableNet",
            "AccountsAndNotesReceivableNetCurrent",
        ),
        "instant",
    ),
    "ebitda": MetricSpec(
        _usd(
            "EarningsBeforeInterestTaxesDepreciationAndAmortization",
            "EarningsBeforeInterestAheadOfDiscontinuedOperationsIncomeLoss",
        ),
        "duration",
    ),
    "net_income": MetricSpec(_usd("NetIncomeLoss", "ProfitLoss"), "duration"),
    "cash": MetricSpec(
        _usd(
            "CashAndCashEquivalentsAtCarryingValue",
            "CashAndCashEquivalents",
            "CashCashEquivalentsRestrictedCashAndRestrictedCashEquivalents",
        ),
        "instant",
    ),
    # Total debt: direct tag first, else current + noncurrent
    "debt_total": MetricSpec(
        _usd(
            "Debt",
            "DebtInstrumentCarryingAmount",
            "DebtAndCapitalLeaseObligations",
            "LongTermDebtAndCapitalLeaseObligations",
        ),
        "instant",
    ),
    "debt_current": MetricSpec(
        _usd("DebtCurrent", "ShortTermBorrowings", "CommercialPaper"),
        "instant",
    ),
    "debt_noncurrent": MetricSpec(
        _usd("LongTermDebtNoncurrent", "LongTermDebt", "NotesPayableNoncurrent"),
        "instant",
    ),
    "diluted_shares": MetricSpec(
        [
            ConceptConfig(
                taxonomy="dei",
                concepts=["WeightedAverageNumberOfDilutedSharesOutstanding"],
                units=SHARE_UNITS,
            ),
            ConceptConfig(
                taxonomy="us-gaap",
                concepts=[
                    "WeightedAverageNumberOfDilutedSharesOutstanding",
                    "WeightedAverageNumberOfSharesOutstandingDiluted",
                ],
                units=SHARE_UNITS,
            ),
        ],
        "duration",
    ),
}


# ═══════════════════════════════════════════════════════════════════════════
#  Financial Modeling Prep: first non-null field wins
# ═══════════════════════════════════════════════════════════════════════════

FMP_DATE_FIELDS = ["date", "period", "reportDate", "fillingDate"]

FMP_FIELDS: dict[str, dict[str, list[str]]] = {
    "income": {
        "revenue": ["revenue", "totalRevenue"],
        "gross_profit": ["grossProfit"],
        "sga": [
            "sellingGeneralAdministrative",
            "sellingGeneralAdministrativeExpenses",
            "sellingGeneralAndAdministrativeExpenses",
            "otherSellingGeneralAdministrative",
        ],
        "ebitda": ["ebitda", "EBITDA"],
        "net_income": ["netIncome", "netIncomeIncomeTaxExpense"],
        "rnd": ["researchAndDevelopment", "researchAndDevelopmentExpenses"],
        "diluted_shares": [
            "weightedAverageShsOutDil",
            "weightedAverageShsOutDiluted",
            "weightedAverageShsOut",
        ],
    },
    "cashflow": {
        "ocf": [
            "netCashProvidedByOperatingActivities",
            "netCashProvidedByOperatingActivitiesContinuingOperations",
            "netCashProvidedByOperatingActivitiesDirect",
            "operatingCashFlow",
        ],
        "capex": ["capitalExpenditure", "capitalExpenditures", "capitalExpenditureReported"],
    },
    "balance": {
        "inventory": ["inventory", "inventoryAndOtherCurrentAssets"],
        "receivables": ["netReceivables", "accountsReceivables", "accountsReceivable"],
        "cash": [
            "cashAndCashEquivalents",
            "cashAndCashEquivalentsAndShortTermInvestments",
            "cashAndEquivalents",
        ],
        "total_debt": [
            "totalDebt",
            "totalDebtAndLeaseObligation",
            "totalDebtAndCapitalLeaseObligation",
        ],
    },
}

FMP_MARKET_CAP_FIELDS = ["marketCap", "mktCap"]


# ═══════════════════════════════════════════════════════════════════════════
#  Finnhub financials-reported: concept ids are "<taxonomy>_<Tag>"
# ═══════════════════════════════════════════════════════════════════════════

FINNHUB_CONCEPTS: dict[str, dict[str, list[str]]] = {
    "ic": {
        "revenue": ["us-gaap_Revenues", "us-gaap_SalesRevenueNet",
                    "us-gaap_RevenueFromContractWithCustomerExcludingAssessedTax"],
        "gross_profit": ["us-gaap_GrossProfit"],
        "sga": [
            "us-gaap_SellingGeneralAndAdministrativeExpense",
            "us-gaap_SellingGeneralAndAdministrativeExpenseValueAdded",
        ],
        "rnd": [
            "us-gaap_ResearchAndDevelopmentExpense",
            "us-gaap_ResearchAndDevelopmentExpenseExcludingAcquiredInProcessCost",
        ],
        "ebitda": [
            "us-gaap_EarningsBeforeInterestTaxesDepreciationAndAmortization",
            "us-gaap_EarningsBeforeInterestAndTaxes",
        ],
        "net_income": ["us-gaap_NetIncomeLoss", "us-gaap_ProfitLoss"],
        "diluted_shares": [
            "us-gaap_WeightedAverageNumberOfDilutedSharesOutstanding",
            "us-gaap_WeightedAverageNumberOfDilutedSharesOutstandingRestated",
        ],
    },
    "cf": {
        "ocf": [
            "us-gaap_NetCashProvidedByUsedInOperatingActivities",
            "us-gaap_NetCashProvidedByUsedInOperatingActivitiesContinuingOperations",
        ],
        "capex": [
            "us-gaap_PaymentsToAcquirePropertyPlantAndEquipment",
            "us-gaap_PaymentsToAcquireProductiveAssets",
            "us-gaap_PurchaseOfFixedAssets",
        ],
    },
    "bs": {
        "inventory": ["us-gaap_InventoryNet", "us-gaap_InventoriesNet"],
        "receivables": [
            "us-gaap_AccountsReceivableNetCurrent",
            "us-gaap_AccountsReceivableNet",
            "us-gaap_AccountsAndNotesReceivableNetCurrent",
        ],
        "cash": [
            "us-gaap_CashAndCashEquivalentsAtCarryingValue",
            "us-gaap_CashAndCashEquivalents",
            "us-gaap_CashCashEquivalentsRestrictedCashAndRestrictedCashEquivalents",
        ],
        "total_debt": [
            "us-gaap_DebtAndCapitalLeaseObligations",
            "us-gaap_Debt",
            "us-gaap_DebtInstrumentCarryingAmount",
            "us-gaap_LongTermDebtAndCapitalLeaseObligations",
        ],
        "debt_current": [
            "us-gaap_DebtCurrent",
            "us-gaap_ShortTermBorrowings",
            "us-gaap_CommercialPaper",
        ],
        "debt_noncurrent": [
            "us-gaap_LongTermDebtNoncurrent",
            "us-gaap_LongTermDebt",
            "us-gaap_NotesPayableNoncurrent",
        ],
    },
}

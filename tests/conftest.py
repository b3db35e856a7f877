"""Shared fixtures: a fake HTTP transport and provider payload builders."""

import json

import pandas as pd
import pytest

from tenbagger.config import Settings
from tenbagger.models import Fundamentals, Quarter


class FakeResponse:
    def __init__(self, payload=None, status=200, text=None, reason="OK"):
        self.status_code = status
        self.reason = reason
        if text is None:
            text = "" if payload is None else json.dumps(payload)
        self.text = text


class FakeHttp:
    """requests stand-in that routes GETs by URL fragment (first match wins)."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        for fragment, response in self.routes.items():
            if fragment in url:
                if isinstance(response, Exception):
                    raise response
                return response
        return FakeResponse(status=404, reason="Not Found")

    def urls(self):
        return [c["url"] for c in self.calls]


@pytest.fixture
def settings():
    return Settings(
        sec_user_agent="tenbagger-tests/0.1 (tests@example.com)",
        fmp_api_key="fmp-key",
        finnhub_api_key="fh-key",
        _env_file=None,
    )


@pytest.fixture
def bare_settings():
    return Settings(
        sec_user_agent="",
        fmp_api_key="",
        finnhub_api_key="",
        _env_file=None,
    )


# ── payload builders ─────────────────────────────────────────────────

def quarter_ends(n, last="2024-12-31"):
    """n calendar quarter-end dates, newest first."""
    ends = pd.period_range(end=pd.Period(last, freq="Q"), periods=n, freq="Q")[::-1]
    return [p.end_time.strftime("%Y-%m-%d") for p in ends]


def finnhub_reports(n=6, last="2024-12-31"):
    reports = []
    for i, end in enumerate(quarter_ends(n, last)):
        period = pd.Period(end, freq="Q")
        reports.append({
            "form": "10-Q",
            "year": period.year,
            "quarter": period.quarter,
            "endDate": f"{end} 00:00:00",
            "report": {
                "ic": [
                    {"concept": "us-gaap_Revenues", "value": 1000 - 10 * i},
                    {"concept": "us-gaap_GrossProfit", "value": 600 - 5 * i},
                    {"concept": "us-gaap_NetIncomeLoss", "value": 100},
                ],
                "cf": [
                    {"concept": "us-gaap_NetCashProvidedByUsedInOperatingActivities", "value": 200},
                    {"concept": "us-gaap_PaymentsToAcquirePropertyPlantAndEquipment", "value": -50},
                ],
                "bs": [
                    {"concept": "us-gaap_DebtCurrent", "value": 30},
                    {"concept": "us-gaap_LongTermDebtNoncurrent", "value": 70},
                ],
            },
        })
    return reports


def fmp_rows(n=6, last="2024-12-31"):
    income, cashflow, balance = [], [], []
    for i, end in enumerate(quarter_ends(n, last)):
        income.append({"date": end, "revenue": 2000 - 20 * i, "grossProfit": 1200, "netIncome": 150,
                       "weightedAverageShsOutDil": 500})
        cashflow.append({"date": end, "operatingCashFlow": 300, "capitalExpenditure": -80})
        balance.append({"date": end, "cashAndCashEquivalents": 400, "totalDebt": 250})
    return income, cashflow, balance


def companyfacts(n=10, last="2024-12-31", filed_lag_days=40):
    """companyfacts document with n discrete quarters of revenue and OCF."""
    revenues, ocf, cash = [], [], []
    for i, end in enumerate(quarter_ends(n, last)):
        period = pd.Period(end, freq="Q")
        start = period.start_time.strftime("%Y-%m-%d")
        filed = (period.end_time + pd.Timedelta(days=filed_lag_days)).strftime("%Y-%m-%d")
        common = {"fy": period.year, "fp": f"Q{period.quarter}", "form": "10-Q", "filed": filed}
        revenues.append({"start": start, "end": end, "val": 5000 - 100 * i, **common})
        ocf.append({"start": start, "end": end, "val": 900, **common})
        cash.append({"end": end, "val": 1500, **common})
    return {
        "cik": 1234567,
        "entityName": "Example Corp",
        "facts": {
            "us-gaap": {
                "Revenues": {"units": {"USD": revenues}},
                "NetCashProvidedByUsedInOperatingActivities": {"units": {"USD": ocf}},
                "CashAndCashEquivalentsAtCarryingValue": {"units": {"USD": cash}},
            },
        },
    }


def make_fundamentals(n, last="2024-12-31", market_cap=1_000.0, ticker="EXM", **series):
    """Fundamentals with n consecutive quarters ending at last, newest first.

    Each keyword is a Quarter field; pass a constant or a newest-first list
    (None entries stay unknown).
    """
    quarters = []
    for i, end in enumerate(quarter_ends(n, last)):
        fields = {}
        for name, value in series.items():
            fields[name] = value[i] if isinstance(value, (list, tuple)) else value
        quarters.append(Quarter(period=pd.Timestamp(end, tz="UTC").to_pydatetime(), **fields))
    return Fundamentals(ticker=ticker, market_cap=market_cap, quarters=quarters)

import pytest
import requests

from app.src import exceptions, gstin
from app.src.db import GstinLookupLog
from app.src.enums import GstinLookupOutcome, Role
from app.src.gstin import (
    AppyflowProvider,
    CommonApiProvider,
    GSTProvider,
    getPath,
    isValidGstin,
    normalizeGstin,
    normalizeTaxpayer,
    providerError,
    verifyGstin,
)
from app.src.schemas import TenantConfig

GSTIN = "36AABCR1234M1Z5"


class FakeResponse:
    def __init__(self, body=None, status_code=200, invalid=False):
        self.body = body
        self.status_code = status_code
        self.invalid = invalid

    def json(self):
        if self.invalid:
            raise ValueError("Expecting value")
        return self.body


class StubProvider(GSTProvider):
    name = "stub"

    def __init__(self, answer=None, error=None, configured=True):
        super().__init__()
        self.answer = answer
        self.error = error
        self.configured = configured
        self.calls = []

    def isConfigured(self):
        return self.configured

    def request(self, gstin):
        self.calls.append(gstin)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.answer)


# ---------------------------------------------------------------------------
# Format
# ---------------------------------------------------------------------------
def test_gstin_is_trimmed_and_uppercased():
    assert normalizeGstin("  36aabcr1234m1z5 ") == GSTIN
    assert normalizeGstin(None) == ""


@pytest.mark.parametrize(
    "value, valid",
    [
        (GSTIN, True),
        ("27AAPFU0939F1ZV", True),
        ("36AABCR1234M1Y5", False),
        ("36AABCR1234M0Z5", False),
        ("3AABCR1234M1Z5", False),
        ("", False),
    ],
)
def test_gstin_format(value, valid):
    assert isValidGstin(value) is valid


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------
def test_get_path_stops_at_scalars():
    assert getPath({"a": {"b": 1}}, "a.b") == 1
    assert getPath({"a": "x"}, "a.b") is None
    assert getPath({}, "a") is None


def test_commonapi_shape():
    raw = {
        "data": {
            "lgnm": "RAIZE CHEMICALS PRIVATE LIMITED",
            "tradeNam": "RAIZE CHEMICALS",
            "sts": "Active",
            "rgdt": "01/07/2017",
            "ctb": "Private Limited Company",
            "pradr": {
                "addr": {
                    "bnm": "Plot 12",
                    "st": "IDA Phase 2",
                    "loc": "Cherlapally",
                    "dst": "Medchal",
                    "stcd": "Telangana",
                    "pncd": "500051",
                }
            },
        }
    }

    info = normalizeTaxpayer(raw, GSTIN)

    assert info.legal_name == "RAIZE CHEMICALS PRIVATE LIMITED"
    assert info.trade_name == "RAIZE CHEMICALS"
    assert info.status == "Active"
    assert info.registration_date == "01/07/2017"
    assert info.address == "Plot 12, IDA Phase 2, Cherlapally, Medchal"
    assert info.state == "Telangana"
    assert info.state_code == "36"
    assert info.pincode == "500051"
    assert info.constitution == "Private Limited Company"


def test_appyflow_shape():
    raw = {
        "flag": True,
        "taxpayerInfo": {
            "lgnm": "SRI SAI TRADERS",
            "sts": "Active",
            "pradr": {"adr": "4-1-12, Abids, Hyderabad", "pncd": "500001"},
        },
    }

    info = normalizeTaxpayer(raw, GSTIN)

    assert info.legal_name == "SRI SAI TRADERS"
    assert info.address == "4-1-12, Abids, Hyderabad"
    assert info.pincode == "500001"
    assert info.trade_name == ""


def test_flat_shape_with_explicit_state_code():
    raw = {
        "legal_name": "KRISHNA AGENCIES",
        "status": "Cancelled",
        "state_code": "29",
        "address": "MG Road, Bengaluru",
    }

    info = normalizeTaxpayer(raw, GSTIN)

    assert info.status == "Cancelled"
    assert info.state_code == "29"
    assert info.address == "MG Road, Bengaluru"
    assert info.registration_date is None


def test_malformed_state_code_falls_back_to_gstin():
    info = normalizeTaxpayer({"legalName": "X", "stateCode": "TS"}, GSTIN)

    assert info.state_code == "36"
    assert info.legal_name == "X"


def test_empty_envelope_falls_back_to_root():
    info = normalizeTaxpayer({"data": {}, "lgnm": "ROOT LEVEL"}, GSTIN)

    assert info.legal_name == "ROOT LEVEL"


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------
@pytest.mark.parametrize(
    "raw, statusCode, message",
    [
        ({"data": {}}, 200, None),
        ({"flag": True}, 200, None),
        ({"error": False}, 200, None),
        ({"error": True, "message": "GSTIN not found"}, 200, "GSTIN not found"),
        ({"error": "Invalid key"}, 200, "Invalid key"),
        ({"flag": False}, 200, "Invalid GST or API error"),
        ({}, 404, "Invalid GST or API error"),
    ],
)
def test_provider_error(raw, statusCode, message):
    assert providerError(raw, statusCode) == message


def test_unconfigured_provider_makes_no_request(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("unexpected request")

    monkeypatch.setattr(requests, "get", fail)

    with pytest.raises(exceptions.GSTProviderNotConfigured):
        CommonApiProvider(baseUrl="https://gsp.example", apiKey=None).fetch(GSTIN)
    with pytest.raises(exceptions.GSTProviderNotConfigured):
        AppyflowProvider(url="https://appyflow.example", keySecret="").fetch(GSTIN)


def test_commonapi_request(monkeypatch):
    sent = {}

    def get(url, params=None, headers=None, timeout=None):
        sent.update(url=url, params=params, headers=headers, timeout=timeout)
        return FakeResponse({"data": {"lgnm": "A"}})

    monkeypatch.setattr(requests, "get", get)
    provider = CommonApiProvider(baseUrl="https://gsp.example/", apiKey="k", timeout=3)

    assert provider.fetch(GSTIN) == {"data": {"lgnm": "A"}}
    assert sent["url"] == "https://gsp.example/commonapi/v1.1/search"
    assert sent["params"] == {"gstin": GSTIN, "consent": "Y"}
    assert sent["headers"]["Authorization"] == "Bearer k"
    assert sent["timeout"] == 3


def test_appyflow_request(monkeypatch):
    sent = {}

    def get(url, params=None, timeout=None):
        sent.update(url=url, params=params)
        return FakeResponse({"flag": True, "taxpayerInfo": {"lgnm": "A"}})

    monkeypatch.setattr(requests, "get", get)
    provider = AppyflowProvider(url="https://appyflow.example/verifyGST", keySecret="s")

    provider.fetch(GSTIN)
    assert sent["url"] == "https://appyflow.example/verifyGST"
    assert sent["params"] == {"key_secret": "s", "gstNo": GSTIN}


def test_network_failure_is_unreachable():
    provider = StubProvider(error=requests.Timeout("read timed out"))

    with pytest.raises(exceptions.GSTProviderUnreachable):
        provider.fetch(GSTIN)


def test_invalid_bodies_are_rejected(monkeypatch):
    provider = CommonApiProvider(baseUrl="https://gsp.example", apiKey="k")

    monkeypatch.setattr(requests, "get", lambda *a, **k: FakeResponse(invalid=True))
    with pytest.raises(exceptions.GSTProviderRejected) as error:
        provider.fetch(GSTIN)
    assert error.value.detail == "Invalid response from GST verification provider"

    monkeypatch.setattr(requests, "get", lambda *a, **k: FakeResponse(["a"]))
    with pytest.raises(exceptions.GSTProviderRejected):
        provider.fetch(GSTIN)


def test_provider_message_is_passed_on(monkeypatch):
    body = {"error": True, "message": "Invalid GSTIN"}
    monkeypatch.setattr(requests, "get", lambda *a, **k: FakeResponse(body, 400))
    provider = CommonApiProvider(baseUrl="https://gsp.example", apiKey="k")

    with pytest.raises(exceptions.GSTProviderRejected) as error:
        provider.fetch(GSTIN)
    assert error.value.detail == "Invalid GSTIN"
    assert error.value.status_code == 400


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------
@pytest.fixture
def caller(make_account):
    account, _ = make_account("accounts@raizechem.in", [Role.ACCOUNTS])
    return account


def auditRows(session):
    session.expire_all()
    return session.query(GstinLookupLog).order_by(GstinLookupLog.id.asc()).all()


def verify(session, caller, provider, value=GSTIN, roles=("accounts",), now=None):
    return verifyGstin(
        session,
        value,
        caller.id,
        roles,
        "gstin-lookup",
        provider,
        TenantConfig(),
        now=now,
    )


def test_success_is_audited(session, caller):
    provider = StubProvider({"data": {"lgnm": "RAIZE", "sts": "Active"}})

    info = verify(session, caller, provider, value=" 36aabcr1234m1z5")

    assert info.gstin == GSTIN
    assert provider.calls == [GSTIN]
    [row] = auditRows(session)
    assert row.gstin == GSTIN
    assert row.account_id == caller.id
    assert row.endpoint == "gstin-lookup"
    assert row.outcome == GstinLookupOutcome.SUCCESS
    assert row.detail == {"provider": "stub", "status": "Active", "legal_name": "RAIZE"}


def test_invalid_format_leaves_no_trace(session, caller, redis_client):
    provider = StubProvider({"data": {}})

    with pytest.raises(exceptions.InvalidGSTIN):
        verify(session, caller, provider, value="36AABCR1234")

    assert provider.calls == []
    assert auditRows(session) == []
    assert redis_client.keys("ratelimit:*") == []


def test_roles_are_checked_first(session, caller):
    provider = StubProvider({"data": {}})

    with pytest.raises(exceptions.NoPermission):
        verify(session, caller, provider, value="bad", roles=("warehouse",))
    assert auditRows(session) == []


def test_rate_limit_window(session, caller):
    provider = StubProvider({"data": {"lgnm": "A"}})
    for second in range(10):
        verify(session, caller, provider, now=1000.0 + second)

    with pytest.raises(exceptions.RateLimited):
        verify(session, caller, provider, now=1060.0)
    assert len(provider.calls) == 10

    # The call at t=1000 has left the trailing window
    verify(session, caller, provider, now=1060.5)
    assert len(provider.calls) == 11

    outcomes = [row.outcome for row in auditRows(session)]
    assert outcomes.count(GstinLookupOutcome.RATE_LIMITED) == 1
    assert outcomes.count(GstinLookupOutcome.SUCCESS) == 11


def test_rate_limit_is_per_account(session, caller, make_account):
    other, _ = make_account("other@raizechem.in", [Role.SALES])
    provider = StubProvider({"data": {"lgnm": "A"}})
    for second in range(10):
        verify(session, caller, provider, now=2000.0 + second)

    verify(session, other, provider, roles=("sales",), now=2005.0)
    assert len(provider.calls) == 11


@pytest.mark.parametrize(
    "provider, error, outcome",
    [
        (
            StubProvider(configured=False),
            exceptions.GSTProviderNotConfigured,
            GstinLookupOutcome.NOT_CONFIGURED,
        ),
        (
            StubProvider(error=requests.ConnectionError()),
            exceptions.GSTProviderUnreachable,
            GstinLookupOutcome.PROVIDER_UNREACHABLE,
        ),
        (
            StubProvider({"error": True, "message": "Not found"}),
            exceptions.GSTProviderRejected,
            GstinLookupOutcome.PROVIDER_REJECTED,
        ),
    ],
)
def test_provider_failures_are_audited(session, caller, provider, error, outcome):
    with pytest.raises(error):
        verify(session, caller, provider)

    [row] = auditRows(session)
    assert row.outcome == outcome
    assert row.detail["provider"] == "stub"
    assert row.detail["error"]


def test_unexpected_error_is_audited_as_internal(session, caller, monkeypatch):
    def explode(raw, value):
        raise KeyError("lgnm")

    monkeypatch.setattr(gstin, "normalizeTaxpayer", explode)

    with pytest.raises(KeyError):
        verify(session, caller, StubProvider({"data": {}}))

    [row] = auditRows(session)
    assert row.outcome == GstinLookupOutcome.INTERNAL_ERROR
    assert row.detail["error"] == "KeyError"

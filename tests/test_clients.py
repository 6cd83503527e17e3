"""
Tests for the Fintoc and Lunch Money clients against httpx.MockTransport.
"""
from datetime import date
from decimal import Decimal
import json

import httpx
import pytest

from fintoc_lunchmoney_sync.clients.fintoc import (
    FintocClient,
    clean_description,
    movement_from_payload,
    to_currency_units,
    UnsupportedCurrencyError,
)
from fintoc_lunchmoney_sync.clients.lunchmoney import LunchMoneyClient
from fintoc_lunchmoney_sync.models.transaction import AccountKind, Balance, InsertStatus
from fintoc_lunchmoney_sync.utils.exceptions import UpstreamFetchError, UpstreamWriteError

from conftest import make_movement


def _fintoc_movement(id, amount, currency="CLP", **extra):
    payload = {
        "id": id,
        "object": "movement",
        "amount": amount,
        "post_date": "2024-01-05T00:00:00Z",
        "transaction_date": None,
        "description": "COMPRA NACIONAL SUPERMERCADO",
        "currency": currency,
        "reference_id": None,
        "type": "other",
        "pending": False,
        "recipient_account": None,
        "sender_account": None,
        "comment": None,
    }
    payload.update(extra)
    return payload


def _fintoc(handler):
    return FintocClient("sk_test", transport=httpx.MockTransport(handler))


def _lunch_money(handler):
    return LunchMoneyClient("lm_test", transport=httpx.MockTransport(handler))


# ── Fintoc payload mapping ───────────────────────────────────────────────────

class TestMovementMapping:
    def test_clp_amount_has_no_minor_units(self):
        movement = movement_from_payload(_fintoc_movement("mov_1", -15000))

        assert movement.amount == Decimal("-15000")
        assert movement.posted_date == date(2024, 1, 5)
        assert movement.currency == "CLP"

    def test_usd_amount_in_cents(self):
        movement = movement_from_payload(_fintoc_movement("mov_1", -1234, currency="usd"))

        assert movement.amount == Decimal("-12.34")
        assert movement.currency == "USD"

    def test_unsupported_currency(self):
        with pytest.raises(UnsupportedCurrencyError):
            to_currency_units(100, "JPY")

    def test_transaction_date_preferred_over_post_date(self):
        movement = movement_from_payload(
            _fintoc_movement("mov_1", -1, transaction_date="2024-01-03T15:30:00Z")
        )

        assert movement.posted_date == date(2024, 1, 3)

    def test_prefix_stripped_for_payee(self):
        movement = movement_from_payload(_fintoc_movement("mov_1", -1))

        assert movement.payee == "SUPERMERCADO"
        assert movement.description == "COMPRA NACIONAL SUPERMERCADO"

    def test_prefixes_case_insensitive(self):
        assert clean_description("pago recurrente Netflix") == "Netflix"
        assert clean_description("COMPRA INTER. AMAZON") == "AMAZON"
        assert clean_description("Transferencia") == "Transferencia"

    def test_incoming_transfer_payee_is_sender(self):
        movement = movement_from_payload(
            _fintoc_movement(
                "mov_1",
                50000,
                type="transfer",
                sender_account={
                    "holder_id": "1",
                    "holder_name": "Juan Perez",
                    "number": "123",
                    "institution": {"id": "cl_banco_estado", "name": "Banco Estado", "country": "cl"},
                },
            )
        )

        assert movement.payee == "Juan Perez (Banco Estado)"

    def test_outgoing_transfer_payee_is_recipient(self):
        movement = movement_from_payload(
            _fintoc_movement(
                "mov_1",
                -50000,
                type="transfer",
                recipient_account={"holder_id": "2", "holder_name": "Maria", "institution": None},
            )
        )

        assert movement.payee == "Maria"

    def test_transfer_without_counterparty_falls_back_to_description(self):
        movement = movement_from_payload(_fintoc_movement("mov_1", -1, type="transfer"))

        assert movement.payee == "SUPERMERCADO"


# ── FintocClient ─────────────────────────────────────────────────────────────

class TestFintocClient:
    def test_movements_paginate_until_empty_page(self):
        requests = []
        pages = {
            "1": [_fintoc_movement("mov_1", -100), _fintoc_movement("mov_2", -200)],
            "2": [_fintoc_movement("mov_3", -300)],
        }

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=pages.get(request.url.params["page"], []))

        with _fintoc(handler) as client:
            movements = client.list_movements(
                "acc_1", "link_1", date(2024, 1, 1), date(2024, 1, 31)
            )

        assert [m.id for m in movements] == ["mov_1", "mov_2", "mov_3"]
        assert len(requests) == 3
        first = requests[0]
        assert first.url.path == "/v1/accounts/acc_1/movements"
        assert first.url.params["link_token"] == "link_1"
        assert first.url.params["since"] == "2024-01-01"
        assert first.url.params["until"] == "2024-01-31"
        assert first.url.params["per_page"] == "300"
        assert first.headers["Authorization"] == "sk_test"

    def test_unsupported_currency_movement_skipped(self):
        def handler(request):
            if request.url.params["page"] == "1":
                return httpx.Response(
                    200,
                    json=[_fintoc_movement("mov_1", -100), _fintoc_movement("mov_2", -5, currency="BTC")],
                )
            return httpx.Response(200, json=[])

        with _fintoc(handler) as client:
            movements = client.list_movements("acc_1", "link_1", date(2024, 1, 1), date(2024, 1, 2))

        assert [m.id for m in movements] == ["mov_1"]

    def test_http_error_is_fetch_error(self):
        with _fintoc(lambda request: httpx.Response(401, json={"error": "unauthorized"})) as client:
            with pytest.raises(UpstreamFetchError, match="code 401"):
                client.list_movements("acc_1", "link_1", date(2024, 1, 1), date(2024, 1, 2))

    def test_timeout_is_fetch_error(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with _fintoc(handler) as client:
            with pytest.raises(UpstreamFetchError, match="timed out"):
                client.get_balance("acc_1", "link_1", AccountKind.CHECKING)

    def test_non_array_movements_payload(self):
        with _fintoc(lambda request: httpx.Response(200, json={"error": "bad"})) as client:
            with pytest.raises(UpstreamFetchError):
                client.list_movements("acc_1", "link_1", date(2024, 1, 1), date(2024, 1, 2))

    def test_movement_without_dates_is_fetch_error(self):
        def handler(request):
            if request.url.params["page"] == "1":
                return httpx.Response(200, json=[_fintoc_movement("mov_1", -1, post_date=None)])
            return httpx.Response(200, json=[])

        with _fintoc(handler) as client:
            with pytest.raises(UpstreamFetchError, match="mov_1"):
                client.list_movements("acc_1", "link_1", date(2024, 1, 1), date(2024, 1, 2))

    @pytest.mark.parametrize(
        "kind,expected",
        [
            (AccountKind.CHECKING, Decimal("120000")),
            (AccountKind.SAVINGS, Decimal("120000")),
            (AccountKind.CREDIT, Decimal("350000")),
        ],
    )
    def test_balance_by_account_kind(self, kind, expected):
        account = {
            "id": "acc_1",
            "currency": "CLP",
            "balance": {"available": 650000, "current": 120000, "limit": 1000000},
        }

        with _fintoc(lambda request: httpx.Response(200, json=account)) as client:
            balance = client.get_balance("acc_1", "link_1", kind)

        assert balance == Balance(expected, "CLP")

    def test_balance_unsupported_currency(self):
        account = {"id": "acc_1", "currency": "ARS", "balance": {"available": 1, "current": 1, "limit": 0}}

        with _fintoc(lambda request: httpx.Response(200, json=account)) as client:
            with pytest.raises(UpstreamFetchError, match="ARS"):
                client.get_balance("acc_1", "link_1", AccountKind.CHECKING)

    def test_list_accounts(self):
        accounts = [{"id": "acc_1", "name": "Cuenta Corriente", "type": "checking_account"}]

        def handler(request):
            assert request.url.path == "/v1/accounts"
            assert request.url.params["link_token"] == "link_1"
            return httpx.Response(200, json=accounts)

        with _fintoc(handler) as client:
            assert client.list_accounts("link_1") == accounts


# ── LunchMoneyClient ─────────────────────────────────────────────────────────

def _lm_transaction(id, day, amount, external_id=None, asset_id=111):
    return {
        "id": id,
        "date": day,
        "payee": "Shop",
        "amount": amount,
        "currency": "clp",
        "asset_id": asset_id,
        "external_id": external_id,
    }


class TestLunchMoneyClient:
    def test_list_assets(self):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer lm_test"
            return httpx.Response(
                200,
                json={
                    "assets": [
                        {"id": 111, "name": "cuenta", "display_name": "Cuenta RUT", "balance": "1500.0000", "currency": "clp"},
                        {"id": 222, "name": "tarjeta", "display_name": None, "balance": "-20.5000", "currency": "usd"},
                    ]
                },
            )

        with _lunch_money(handler) as client:
            assets = client.list_assets()

        assert [(a.id, a.name, a.balance, a.currency) for a in assets] == [
            (111, "Cuenta RUT", Decimal("1500"), "CLP"),
            (222, "tarjeta", Decimal("-20.5"), "USD"),
        ]

    def test_list_transactions_pages_and_parses(self):
        requests = []

        def handler(request):
            requests.append(request)
            offset = int(request.url.params["offset"])
            if offset == 0:
                return httpx.Response(
                    200,
                    json={
                        "transactions": [
                            _lm_transaction(1, "2024-01-05", "-15000.0000", "mov_abc"),
                            _lm_transaction(2, "2024-01-06", "-2000.0000"),
                        ],
                        "has_more": True,
                    },
                )
            return httpx.Response(
                200,
                json={
                    "transactions": [
                        _lm_transaction(3, "2024-01-07", "500.0000", asset_id=999),
                        _lm_transaction(4, "2024-01-08", "700.0000", asset_id=None),
                    ],
                    "has_more": False,
                },
            )

        with _lunch_money(handler) as client:
            transactions = client.list_transactions(111)

        assert [t.id for t in transactions] == [1, 2]
        assert transactions[0].external_reference == "mov_abc"
        assert transactions[0].amount == Decimal("-15000")
        assert transactions[0].posted_date == date(2024, 1, 5)
        assert transactions[1].external_reference is None
        assert requests[0].url.params["asset_id"] == "111"
        assert requests[0].url.params["debit_as_negative"] == "true"
        assert requests[0].url.params["start_date"] == "1970-01-01"
        assert requests[1].url.params["offset"] == "2"

    def test_insert_transaction(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"ids": [9001]})

        movement = make_movement("mov_def", date(2024, 1, 6), "-2000")
        with _lunch_money(handler) as client:
            outcome = client.insert_transaction(111, movement)

        assert outcome.status == InsertStatus.INSERTED
        assert outcome.ledger_id == 9001
        sent = bodies[0]["transactions"][0]
        assert sent["external_id"] == "mov_def"
        assert sent["amount"] == "-2000"
        assert sent["date"] == "2024-01-06"
        assert sent["asset_id"] == 111
        assert sent["currency"] == "clp"
        assert sent["status"] == "uncleared"
        assert "notes" not in sent
        assert bodies[0]["debit_as_negative"] is True

    def test_insert_duplicate_is_existing(self):
        def handler(request):
            return httpx.Response(
                200, json={"error": ["Transaction with external_id mov_def already exists"]}
            )

        with _lunch_money(handler) as client:
            outcome = client.insert_transaction(111, make_movement("mov_def", date(2024, 1, 6), "-1"))

        assert outcome.status == InsertStatus.EXISTING

    def test_insert_with_ids_and_errors_is_inserted(self):
        def handler(request):
            return httpx.Response(200, json={"ids": [9001], "error": ["Category not found"]})

        with _lunch_money(handler) as client:
            outcome = client.insert_transaction(111, make_movement("mov_def", date(2024, 1, 6), "-2000"))

        assert outcome.status == InsertStatus.INSERTED
        assert outcome.ledger_id == 9001

    def test_insert_without_ids_or_errors_raises(self):
        with _lunch_money(lambda request: httpx.Response(200, json={"ids": []})) as client:
            with pytest.raises(UpstreamWriteError, match="no id"):
                client.insert_transaction(111, make_movement("mov_1", date(2024, 1, 6), "-1"))

    def test_insert_error_payload_raises(self):
        with _lunch_money(lambda request: httpx.Response(200, json={"error": "Invalid date"})) as client:
            with pytest.raises(UpstreamWriteError, match="Invalid date"):
                client.insert_transaction(111, make_movement("mov_1", date(2024, 1, 6), "-1"))

    def test_insert_http_failure_is_write_error(self):
        with _lunch_money(lambda request: httpx.Response(500, text="oops")) as client:
            with pytest.raises(UpstreamWriteError, match="code 500"):
                client.insert_transaction(111, make_movement("mov_1", date(2024, 1, 6), "-1"))

    def test_update_asset_balance(self):
        bodies = []

        def handler(request):
            assert request.method == "PUT"
            assert request.url.path == "/v1/assets/111"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"id": 111, "balance": "12.3400", "currency": "usd"})

        with _lunch_money(handler) as client:
            client.update_asset_balance(111, Balance(Decimal("12.34"), "USD"))

        assert bodies == [{"balance": "12.34", "currency": "usd"}]

    def test_update_asset_balance_mismatch(self):
        def handler(request):
            return httpx.Response(200, json={"id": 111, "balance": "0.0000", "currency": "usd"})

        with _lunch_money(handler) as client:
            with pytest.raises(UpstreamWriteError, match="expected 12.34"):
                client.update_asset_balance(111, Balance(Decimal("12.34"), "USD"))

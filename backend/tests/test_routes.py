"""
API tests through the Flask test client.

Run with: pytest tests/test_routes.py -v
"""

import pytest


def operator_headers(operator_id: str = "op-a", name: str | None = "Operator A") -> dict:
    """Helper to create the operator identity headers."""
    headers = {"X-Operator-Id": operator_id}
    if name:
        headers["X-Operator-Name"] = name
    return headers


@pytest.fixture
def api_register(client, db_session):
    response = client.post(
        '/api/registers',
        json={'register_number': 'REG-01', 'name': 'Front Counter', 'location': 'Entrance'},
        headers=operator_headers(),
    )
    assert response.status_code == 201
    return response.json['register']


class TestRegisterRoutes:

    def test_create_requires_operator(self, client, db_session):
        response = client.post('/api/registers', json={'register_number': 'REG-01', 'name': 'Front'})
        assert response.status_code == 401

    def test_create_and_get(self, client, api_register):
        response = client.get(f"/api/registers/{api_register['id']}")

        assert response.status_code == 200
        body = response.json['register']
        assert body['register_number'] == 'REG-01'
        assert body['session']['status'] == 'CLOSED'

    def test_duplicate_number_conflict(self, client, api_register):
        response = client.post(
            '/api/registers',
            json={'register_number': 'REG-01', 'name': 'Other'},
            headers=operator_headers(),
        )
        assert response.status_code == 409
        assert response.json['code'] == 'DuplicateRegisterNumber'

    def test_create_missing_fields(self, client, db_session):
        response = client.post('/api/registers', json={'name': 'Front'}, headers=operator_headers())
        assert response.status_code == 400

    def test_create_rejects_unknown_field(self, client, db_session):
        response = client.post(
            '/api/registers',
            json={'register_number': 'REG-09', 'name': 'Front', 'assigned_operator_id': 'x'},
            headers=operator_headers(),
        )
        assert response.status_code == 400

    def test_get_unknown_register(self, client, db_session):
        response = client.get('/api/registers/999999')
        assert response.status_code == 404
        assert response.json['code'] == 'RegisterNotFound'

    def test_patch(self, client, api_register):
        response = client.patch(
            f"/api/registers/{api_register['id']}",
            json={'name': 'Drive-thru', 'is_active': True},
            headers=operator_headers(),
        )
        assert response.status_code == 200
        assert response.json['register']['name'] == 'Drive-thru'
        assert response.json['register']['is_active'] is True

    def test_patch_rejects_non_boolean_flag(self, client, api_register):
        response = client.patch(
            f"/api/registers/{api_register['id']}",
            json={'is_active': 'false'},
            headers=operator_headers(),
        )
        assert response.status_code == 400

    def test_delete_then_absent(self, client, api_register):
        response = client.delete(f"/api/registers/{api_register['id']}", headers=operator_headers())
        assert response.status_code == 200
        assert response.json['deleted'] is True

        again = client.delete(f"/api/registers/{api_register['id']}", headers=operator_headers())
        assert again.json['deleted'] is False
        assert client.get(f"/api/registers/{api_register['id']}").status_code == 404

    def test_assign_unassign_and_available(self, client, api_register):
        rid = api_register['id']

        assigned = client.post(f"/api/registers/{rid}/assign", headers=operator_headers('op-a', 'Ana'))
        assert assigned.status_code == 200
        assert assigned.json['register']['assigned_operator_name'] == 'Ana'

        conflict = client.post(f"/api/registers/{rid}/assign", headers=operator_headers('op-b', 'Bruno'))
        assert conflict.status_code == 409
        assert conflict.json['code'] == 'AlreadyAssigned'

        available = client.get('/api/registers?available=1')
        assert available.json['registers'] == []

        mine = client.get('/api/registers/operators/op-a')
        assert mine.json['register']['id'] == rid

        for _ in range(2):
            released = client.post(f"/api/registers/{rid}/unassign", headers=operator_headers('op-a'))
            assert released.status_code == 200

        available = client.get('/api/registers?available=1')
        assert [r['id'] for r in available.json['registers']] == [rid]


class TestLedgerRoutes:

    def test_full_shift(self, client, api_register):
        rid = api_register['id']
        headers = operator_headers('A', 'Cashier A')

        opened = client.post(f"/api/ledger/{rid}/open", json={'opening_cash_cents': 10000}, headers=headers)
        assert opened.status_code == 201
        assert opened.json['event']['kind'] == 'OPEN'
        assert opened.json['session']['balance_cents'] == 10000

        client.post(f"/api/ledger/{rid}/deposit", json={'amount_cents': 5000}, headers=headers)
        client.post(f"/api/ledger/{rid}/withdraw", json={'amount_cents': 3000, 'reason': 'safe drop'}, headers=headers)

        over = client.post(f"/api/ledger/{rid}/withdraw", json={'amount_cents': 50000}, headers=headers)
        assert over.status_code == 409
        assert over.json['code'] == 'InsufficientBalance'
        assert over.json['details']['balance_cents'] == 12000

        balance = client.get(f"/api/ledger/{rid}/balance")
        assert balance.json == {'register_id': rid, 'is_open': True, 'balance_cents': 12000}

        closed = client.post(
            f"/api/ledger/{rid}/close",
            json={'counted_cash_cents': 11000, 'discrepancy_reason': 'till miscount', 'authorized_by': 'Manager B'},
            headers=headers,
        )
        assert closed.status_code == 201
        event = closed.json['event']
        assert event['discrepancy_cents'] == -1000
        assert event['discrepancy_reason'] == 'till miscount'
        assert event['authorized_by'] == 'Manager B'
        assert closed.json['session']['is_open'] is False

        events = client.get(f"/api/ledger/{rid}/events")
        assert [e['kind'] for e in events.json['events']] == ['OPEN', 'DEPOSIT', 'WITHDRAWAL', 'CLOSE']

        latest = client.get(f"/api/ledger/{rid}/latest")
        assert latest.json['event']['kind'] == 'CLOSE'

        by_operator = client.get('/api/ledger/operators/A/events')
        assert len(by_operator.json['events']) == 4

    def test_write_requires_operator(self, client, api_register):
        response = client.post(f"/api/ledger/{api_register['id']}/open", json={'opening_cash_cents': 100})
        assert response.status_code == 401

    def test_already_open(self, client, api_register):
        rid = api_register['id']
        client.post(f"/api/ledger/{rid}/open", json={'opening_cash_cents': 100}, headers=operator_headers())

        again = client.post(f"/api/ledger/{rid}/open", json={'opening_cash_cents': 100}, headers=operator_headers())
        assert again.status_code == 409
        assert again.json['code'] == 'AlreadyOpen'

    def test_deposit_on_closed_register(self, client, api_register):
        response = client.post(
            f"/api/ledger/{api_register['id']}/deposit",
            json={'amount_cents': 100},
            headers=operator_headers(),
        )
        assert response.status_code == 409
        assert response.json['code'] == 'RegisterNotOpen'

    def test_unknown_register(self, client, db_session):
        response = client.post('/api/ledger/999999/open', json={'opening_cash_cents': 100}, headers=operator_headers())
        assert response.status_code == 404

        assert client.get('/api/ledger/999999/balance').status_code == 404

    @pytest.mark.parametrize("payload", [
        {},
        {'opening_cash_cents': -5},
        {'opening_cash_cents': 10.5},
        {'opening_cash_cents': 100, 'occurred_at': 'not-a-date'},
    ])
    def test_invalid_open_payload(self, client, api_register, payload):
        response = client.post(f"/api/ledger/{api_register['id']}/open", json=payload, headers=operator_headers())
        assert response.status_code == 400

    def test_session_route(self, client, api_register):
        rid = api_register['id']
        client.post(f"/api/ledger/{rid}/open", json={'opening_cash_cents': 700}, headers=operator_headers('op-a'))

        response = client.get(f"/api/ledger/{rid}/session")
        assert response.json['session']['opened_by'] == 'op-a'
        assert response.json['session']['opening_cash_cents'] == 700


class TestReportRoutes:

    def test_cash_operations_report(self, client, api_register):
        rid = api_register['id']
        client.post(f"/api/ledger/{rid}/open", json={'opening_cash_cents': 1000}, headers=operator_headers())
        client.post(f"/api/ledger/{rid}/close", json={'counted_cash_cents': 900, 'discrepancy_reason': 'short'},
                    headers=operator_headers())

        response = client.get('/api/reports/cash-operations?report_type=shortages')
        assert response.status_code == 200
        assert response.json['total_shortage_cents'] == 100

    def test_bad_report_type(self, client, db_session):
        response = client.get('/api/reports/cash-operations?report_type=refunds')
        assert response.status_code == 400

    def test_history_and_summary(self, client, api_register):
        rid = api_register['id']
        client.post(f"/api/ledger/{rid}/open", json={'opening_cash_cents': 1000}, headers=operator_headers())

        history = client.get(f"/api/reports/registers/{rid}/history")
        assert history.status_code == 200
        assert len(history.json['days']) == 1

        summary = client.get(f"/api/reports/registers/{rid}/summary")
        assert summary.json['expected_cash_cents'] == 1000

        assert client.get('/api/reports/registers/999999/summary').status_code == 404


class TestSystemRoutes:

    def test_health(self, client, db_session):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json['checks']['database']['status'] == 'healthy'
        assert response.json['checks']['outbox']['details']['remote_configured'] is False

    def test_version(self, client):
        response = client.get('/version')
        assert response.status_code == 200
        assert 'api_version' in response.json

    def test_outbox_listing(self, client, api_register):
        client.post(f"/api/ledger/{api_register['id']}/open", json={'opening_cash_cents': 100},
                    headers=operator_headers())

        response = client.get('/api/outbox?status=PENDING')
        assert response.json['status']['pending'] == 1
        assert len(response.json['entries']) == 1

    def test_drain_without_remote(self, client, db_session):
        response = client.post('/api/outbox/drain')
        assert response.status_code == 409

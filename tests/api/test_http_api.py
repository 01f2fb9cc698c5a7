"""
HTTP surface tests using FastAPI's TestClient.

Mutations answer 200 with a {success, ...} body; reads answer 404 for an
unknown lot and 400 for a bad inventory type filter.
"""

from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient

from seedbank_services.asset_fetcher import AssetFetcher
from seedbank_services.http_api import create_app

SQUASH = "Diamante-L1-1-11-14-2023-O"
OKRA = "Okra-L2-4-01-10-2024-PM"
QR_URL = "https://example.org/qr/squash.png"
PNG = b"\x89PNG\r\n\x1a\nfake"


@pytest.fixture
def client(inventory_service):
    return TestClient(create_app(inventory_service))


def _fetcher(handler):
    return AssetFetcher(
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=lambda seconds: None,
    )


class TestMutations:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_withdraw(self, client):
        response = client.post(
            "/withdraw",
            json={"lotCode": SQUASH, "amount": 60, "reason": "Planting", "user": "tech"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["newVolume"] == 190
        assert body["previousVolume"] == 250

        (entry,) = client.get("/withdrawalLogs", params={"lotCode": SQUASH}).json()
        assert entry["reason"] == "Planting"
        assert entry["user"] == "tech"
        assert entry["inventoryType"] == "Seed Storage"

    @pytest.mark.parametrize(
        "payload, code",
        [
            ({"lotCode": SQUASH, "amount": 1000}, "INSUFFICIENT_VOLUME"),
            ({"lotCode": SQUASH, "amount": "abc"}, "INVALID_AMOUNT"),
            ({"lotCode": SQUASH, "amount": -5}, "INVALID_AMOUNT"),
            ({"lotCode": "missing", "amount": 1}, "LOT_NOT_FOUND"),
            ({"lotCode": "Corn-L3-2-01-10-2021-C", "amount": 1}, "LOT_ARCHIVED"),
            ({"lotCode": SQUASH, "amount": 1, "inventoryType": "Greenhouse"}, "INVALID_VALUE"),
        ],
    )
    def test_withdraw_failures_are_200(self, client, payload, code):
        response = client.post("/withdraw", json=payload)
        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["code"] == code

    def test_withdraw_body_validation(self, client):
        assert client.post("/withdraw", json={"amount": 5}).status_code == 422

    def test_edit_lot(self, client):
        response = client.post(
            "/editLot",
            json={
                "lotCode": SQUASH,
                "changedFields": {"Remarks": "re-dried", "seedClass": "Breeder"},
                "pinCode": "1001",
                "snapshot": {"Remarks": "", "seedClass": "Foundation"},
            },
        )
        body = response.json()
        assert body["success"] is True
        assert body["changedFields"] == ["remarks", "seed_class"]
        assert body["userRole"] == "Seed Bank Manager"

        (log,) = client.get("/editLogs", params={"lotCode": SQUASH}).json()
        assert log["newValues"] == {"remarks": "re-dried", "seed_class": "Breeder"}
        assert client.get(f"/lots/{SQUASH}").json()["seedClass"] == "Breeder"

    def test_edit_protected_field(self, client):
        response = client.post(
            "/editLot",
            json={"lotCode": SQUASH, "changedFields": {"currentVolume": 5}, "pinCode": "1001"},
        )
        assert response.status_code == 200
        assert response.json()["code"] == "PROTECTED_FIELD"

    def test_register_lot(self, client):
        response = client.post(
            "/lots",
            json={
                "fields": {
                    "Crop": "Okra",
                    "Variety": "Clemson",
                    "Lot Number": "L5",
                    "Bag Number": "2",
                    "Date Stored": "03-15-2024",
                    "Volume Stored": 80,
                    "Location": "Conventional Farm",
                }
            },
        )
        body = response.json()
        assert body["success"] is True
        assert body["lot"]["code"] == "Clemson-L5-2-03-15-2024-C"
        assert client.get("/lots/Clemson-L5-2-03-15-2024-C").status_code == 200

    def test_reconcile(self, client, store):
        client.post("/withdraw", json={"lotCode": SQUASH, "amount": 10})
        store.update_lot_fields(SQUASH, {"current_volume": Decimal("250")})

        report = client.post("/reconcile").json()
        assert report["applied"] is False
        assert [d["lotCode"] for d in report["drifts"]] == [SQUASH]
        assert store.get_lot_by_code(SQUASH).current_volume == Decimal("250")

        report = client.post("/reconcile", params={"apply": "true"}).json()
        assert report["applied"] is True
        assert report["corrected"] == [SQUASH]
        assert store.get_lot_by_code(SQUASH).current_volume == Decimal("240")


class TestReads:

    def test_get_lot(self, client):
        body = client.get(f"/lots/{OKRA}").json()
        assert body["crop"] == "Okra"
        assert body["inventoryType"] == "Planting Materials"

    def test_unknown_lot_404(self, client):
        assert client.get("/lots/nope").status_code == 404

    def test_list_lots_filter(self, client):
        assert [lot["code"] for lot in client.get("/lots", params={"inventoryType": "Planting Materials"}).json()] == [OKRA]
        assert len(client.get("/lots").json()) == 3

    @pytest.mark.parametrize("path", ["/lots", "/inventory"])
    def test_bad_inventory_type_400(self, client, path):
        assert client.get(path, params={"inventoryType": "Greenhouse"}).status_code == 400

    def test_inventory_view(self, client):
        client.post("/withdraw", json={"lotCode": SQUASH, "amount": 200})
        body = client.get("/inventory", params={"inventoryType": "SeedStorage"}).json()

        squash = next(lot for lot in body["lots"] if lot["code"] == SQUASH)
        assert squash["remainingVolume"] == 50
        assert squash["status"] == "Warning"
        assert squash["reasons"] == ["low_volume"]
        assert all(lot["inventoryType"] == "Seed Storage" for lot in body["lots"])
        assert body["diagnostics"] == []

    def test_dashboard(self, client):
        client.post("/withdraw", json={"lotCode": SQUASH, "amount": 60})
        board = client.get("/dashboard").json()

        assert set(board) >= {
            "asOf",
            "currentStock",
            "todaysWithdrawals",
            "lowStockCounts",
            "statusCounts",
            "stockBySeedClass",
            "stockByLocation",
            "monthlyWithdrawals",
            "withdrawalTimeAnalysis",
            "releaseLog",
            "alerts",
            "diagnostics",
        }
        assert board["todaysWithdrawals"]["Seed Storage"]["value"] == 60
        assert set(board["statusCounts"]) == {"Normal", "Warning", "Critical"}


class TestQrImage:

    @pytest.fixture
    def qr_store(self, store, lot_factory):
        store.append_lot(lot_factory("QR-1", qr_image=QR_URL))
        return store

    def test_image_proxied(self, inventory_service, qr_store):
        def handler(request):
            assert str(request.url) == QR_URL
            return httpx.Response(200, content=PNG, headers={"content-type": "image/png"})

        client = TestClient(create_app(inventory_service, fetcher=_fetcher(handler)))
        response = client.get("/lots/QR-1/qrImage")

        assert response.status_code == 200
        assert response.content == PNG
        assert response.headers["content-type"] == "image/png"

    def test_lot_without_qr_404(self, inventory_service, qr_store):
        client = TestClient(create_app(inventory_service, fetcher=_fetcher(lambda r: httpx.Response(500))))
        assert client.get(f"/lots/{SQUASH}/qrImage").status_code == 404
        assert client.get("/lots/nope/qrImage").status_code == 404

    def test_no_fetcher_503(self, client, qr_store):
        assert client.get("/lots/QR-1/qrImage").status_code == 503

    def test_fetch_failure_502(self, inventory_service, qr_store):
        def handler(request):
            return httpx.Response(200, text="<html>sign in</html>", headers={"content-type": "text/html"})

        client = TestClient(create_app(inventory_service, fetcher=_fetcher(handler)))
        response = client.get("/lots/QR-1/qrImage")
        assert response.status_code == 502
        assert "Invalid content type" in response.json()["detail"]

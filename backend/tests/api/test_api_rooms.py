"""
房间 API 测试
覆盖 /rooms 端点：可用性查询、目录维护、房态操作
"""
from datetime import date
from decimal import Decimal
from fastapi.testclient import TestClient

from app.models.ontology import ReservationStatus, RoomStatus, RoomType


class TestAvailability:
    """可用性查询"""

    def test_search_excludes_booked_and_closed(self, client: TestClient, make_room, make_reservation):
        free = make_room(number="301")
        booked = make_room(number="302")
        make_room(number="303", status=RoomStatus.CLOSED)
        make_reservation(booked, date(2025, 3, 11), date(2025, 3, 13))

        response = client.get("/rooms/availability", params={"checkIn": "2025-03-10", "checkOut": "2025-03-12"})

        assert response.status_code == 200
        data = response.json()
        assert [r["number"] for r in data["rooms"]] == [free.number]
        assert data["nights"] == 2
        assert Decimal(data["rooms"][0]["total_price"]) == Decimal("200")
        assert data["type"] == "all"

    def test_cancelled_reservation_frees_room(self, client: TestClient, sample_room, make_reservation):
        make_reservation(sample_room, date(2025, 3, 10), date(2025, 3, 12), status=ReservationStatus.CANCELLED)

        data = client.get("/rooms/availability", params={"check_in": "2025-03-10", "check_out": "2025-03-12"}).json()

        assert [r["id"] for r in data["rooms"]] == [sample_room.id]

    def test_filters_guests_and_type(self, client: TestClient, make_room):
        make_room(number="401", capacity=2, room_type=RoomType.SUITE_DOUBLE)
        family = make_room(number="402", capacity=4, room_type=RoomType.VILLA_GRANDE)

        data = client.get("/rooms/availability", params={
            "check_in": "2025-03-10", "check_out": "2025-03-11", "guests": 3, "type": "VILLA_GRANDE",
        }).json()

        assert [r["id"] for r in data["rooms"]] == [family.id]

    def test_missing_dates(self, client: TestClient):
        response = client.get("/rooms/availability", params={"check_in": "2025-03-10"})
        assert response.status_code == 400

    def test_invalid_type(self, client: TestClient):
        response = client.get("/rooms/availability", params={
            "check_in": "2025-03-10", "check_out": "2025-03-11", "type": "PENTHOUSE",
        })
        assert response.status_code == 400


class TestRoomCatalog:
    """房间目录"""

    def test_staff_creates_room(self, client: TestClient, operator_headers):
        response = client.post("/rooms", headers=operator_headers, json={
            "number": "501", "type": "SUITE_DOUBLE", "price": "150.00", "capacity": 2, "floor": 5,
        })

        assert response.status_code == 201
        assert response.json()["status"] == "AVAILABLE"

    def test_duplicate_number(self, client: TestClient, operator_headers, sample_room):
        response = client.post("/rooms", headers=operator_headers, json={
            "number": sample_room.number, "type": "SUITE_DOUBLE", "price": "150.00", "capacity": 2, "floor": 1,
        })
        assert response.status_code == 400

    def test_guest_cannot_create(self, client: TestClient, guest_headers):
        response = client.post("/rooms", headers=guest_headers, json={
            "number": "502", "type": "SUITE_DOUBLE", "price": "150.00", "capacity": 2, "floor": 5,
        })
        assert response.status_code == 403

    def test_update_room(self, client: TestClient, operator_headers, sample_room):
        response = client.put(f"/rooms/{sample_room.id}", headers=operator_headers,
                              json={"price": "180.00", "description": None})

        assert response.status_code == 200
        assert Decimal(response.json()["price"]) == Decimal("180")
        assert response.json()["status"] == "AVAILABLE"

    def test_update_rejects_null_price(self, client: TestClient, operator_headers, sample_room):
        response = client.put(f"/rooms/{sample_room.id}", headers=operator_headers, json={"price": None})

        assert response.status_code == 400
        assert response.json()["detail"] == "字段 price 不能为空"
        assert Decimal(client.get(f"/rooms/{sample_room.id}").json()["price"]) == Decimal("100")

    def test_list_and_get(self, client: TestClient, make_room):
        room = make_room(floor=3)
        make_room(floor=4)

        assert len(client.get("/rooms", params={"floor": 3}).json()) == 1
        assert client.get(f"/rooms/{room.id}").json()["number"] == room.number
        assert client.get("/rooms/999").status_code == 404


class TestRoomStatusAction:
    """房态操作"""

    def test_close_blocked_message(self, client: TestClient, operator_headers, sample_room, make_reservation):
        make_reservation(sample_room, date(2025, 3, 15), date(2025, 3, 17))

        response = client.post(f"/rooms/{sample_room.id}/status", headers=operator_headers,
                               json={"action": "CLOSED"})

        assert response.status_code == 400
        assert response.json()["detail"] == "无法关闭：房间有 1 个活动预订，最近一个在 5 天后入住，请先取消这些预订"

    def test_maintenance_with_warning(self, client: TestClient, operator_headers, sample_room, make_reservation):
        make_reservation(sample_room, date(2025, 3, 11), date(2025, 3, 13))

        response = client.post(f"/rooms/{sample_room.id}/status", headers=operator_headers,
                               json={"action": "MAINTENANCE"})

        assert response.status_code == 200
        data = response.json()
        assert data["room"]["status"] == "MAINTENANCE"
        assert "1 天后入住" in data["message"]
        assert data["reservation_info"]["total_active_reservations"] == 1
        assert data["reservation_info"]["next_check_in"] == "2025-03-11"

    def test_guest_forbidden(self, client: TestClient, guest_headers, sample_room):
        response = client.post(f"/rooms/{sample_room.id}/status", headers=guest_headers,
                               json={"action": "CLEANING"})
        assert response.status_code == 403

    def test_unknown_action(self, client: TestClient, operator_headers, sample_room):
        response = client.post(f"/rooms/{sample_room.id}/status", headers=operator_headers,
                               json={"action": "DEMOLISH"})
        assert response.status_code == 422

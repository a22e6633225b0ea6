from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from backend.auth.jwt import get_current_resident, require_roles
from backend.constants import MANAGER_ROLES


class DummyResident:
    def __init__(self, *roles: str):
        self._roles = set(roles)

    def has_any_role(self, *role_names: str) -> bool:
        return any(role in self._roles for role in role_names)


def _build_app() -> FastAPI:
    app = FastAPI()

    @app.get("/board")
    def board_route(_: object = Depends(require_roles(*MANAGER_ROLES))):
        return {"ok": True}

    @app.get("/homeowners")
    def homeowners_route(_: object = Depends(require_roles("HOMEOWNER", "BOARD"))):
        return {"ok": True}

    return app


def test_board_route_allows_board_and_developers():
    app = _build_app()
    client = TestClient(app)

    app.dependency_overrides[get_current_resident] = lambda: DummyResident("RESIDENT", "HOMEOWNER")
    response = client.get("/board")
    assert response.status_code == 403
    assert response.json()["detail"] == "Operation not permitted for your role"

    app.dependency_overrides[get_current_resident] = lambda: DummyResident("BOARD")
    assert client.get("/board").status_code == 200

    app.dependency_overrides[get_current_resident] = lambda: DummyResident("DEV")
    assert client.get("/board").status_code == 200


def test_homeowner_route_rejects_renters():
    app = _build_app()
    client = TestClient(app)

    app.dependency_overrides[get_current_resident] = lambda: DummyResident("RESIDENT", "RENTER")
    assert client.get("/homeowners").status_code == 403

    app.dependency_overrides[get_current_resident] = lambda: DummyResident("HOMEOWNER")
    assert client.get("/homeowners").status_code == 200


def test_role_names_follow_resident_flags(create_resident):
    assert create_resident().role_names == {"RESIDENT", "HOMEOWNER"}
    assert create_resident(is_renter=True).role_names == {"RESIDENT", "RENTER"}
    assert create_resident(is_board_member=True, is_dev=True).role_names == {"RESIDENT", "HOMEOWNER", "BOARD", "DEV"}

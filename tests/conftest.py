import os
import sys

import pytest

# Path setup before any project imports to satisfy E402
ROOT = os.path.dirname(__file__)
PARENT = os.path.abspath(os.path.join(ROOT, ".."))
if PARENT not in sys.path:  # pragma: no cover - environment dependent
    sys.path.insert(0, PARENT)

TEST_CLIENT_ID = "11111111-2222-3333-4444-555555555555"
TEST_TENANT_ID = "contoso.onmicrosoft.com"
FRONTEND = "http://frontend.test"

# name -> (employee code, first, last, email, role)
PEOPLE = {
    "admin": ("EMP100", "Alice", "Admin", "alice@example.com", "admin"),
    "employee": ("EMP200", "Bob", "Worker", "bob@example.com", "employee"),
    "manager": ("EMP300", "Carol", "Lead", "carol@example.com", "manager"),
    "other": ("EMP400", "Dan", "Other", "dan@example.com", "employee"),
    "hr": ("EMP500", "Erin", "People", "erin@example.com", "hr"),
    "it_admin": ("EMP600", "Finn", "Ops", "finn@example.com", "it_admin"),
}


def _lazy_imports():  # isolate heavy imports & satisfy lint ordering
    from ems.app_factory import create_app  # noqa: E402
    from ems.db import create_all, get_session  # noqa: E402
    from ems.models import Department, Employee, UserRoleMap  # noqa: E402

    return create_app, create_all, get_session, Department, Employee, UserRoleMap


class StubIdentityClient:
    """Records calls; ``exchange_result`` may be a dict or an exception to raise."""

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.exchange_result: object = {"access_token": "user-token", "expires_in": 3600}
        self.fail_auth_url = False

    def get_auth_code_url(self, *, redirect_uri, scopes=("User.Read",), login_hint=None, state=None, prompt="select_account"):
        from ems.identity_client import AuthRequest, IdentityError

        self.calls.append(("get_auth_code_url", {"redirect_uri": redirect_uri, "scopes": list(scopes), "login_hint": login_hint}))
        if self.fail_auth_url:
            raise IdentityError("boom", correlation_id="cid")
        url = f"https://login.example.test/authorize?login_hint={login_hint}"
        return AuthRequest(url=url, state="state", nonce="nonce", correlation_id="cid")

    def exchange_code(self, code, *, redirect_uri, scopes=("User.Read",)):
        self.calls.append(("exchange_code", {"code": code, "redirect_uri": redirect_uri}))
        if isinstance(self.exchange_result, Exception):
            raise self.exchange_result
        return self.exchange_result


class StubGraphClient:
    def __init__(self):
        self.profile: dict = {"id": "graph-unknown", "mail": "nobody@example.com"}
        self.tokens_seen: list[str | None] = []

    def get_user_profile(self, token=None, user_id="me"):
        self.tokens_seen.append(token)
        return dict(self.profile)


@pytest.fixture
def identity():
    return StubIdentityClient()


@pytest.fixture
def graph():
    return StubGraphClient()


@pytest.fixture
def cache():
    from ems.cache_memory import MemoryCache

    return MemoryCache()


@pytest.fixture
def app(tmp_path, identity, graph, cache):
    create_app, create_all, get_session, Department, Employee, UserRoleMap = _lazy_imports()
    url = f"sqlite:///{tmp_path / 'test_app.db'}"
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test",
            "FORCE_DB_REINIT": True,
            "database_url": url,
            "jwt_secret": "test-access-secret",
            "jwt_refresh_secret": "test-refresh-secret",
            "client_id": TEST_CLIENT_ID,
            "client_secret": "test-client-secret",
            "tenant_id": TEST_TENANT_ID,
            "frontend_url": FRONTEND,
            "cache_backend": "memory",
            "rate_limit_backend": "noop",
            "cache": cache,
            "identity_client": identity,
            "graph_client": graph,
        }
    )
    with app.app_context():
        create_all()
        db = get_session()
        try:
            dept = Department(name="Engineering")
            db.add(dept)
            db.flush()
            for name, (code, first, last, email, role) in PEOPLE.items():
                emp = Employee(
                    employee_id=code, first_name=first, last_name=last, contact_email=email, department_id=dept.id
                )
                db.add(emp)
                db.flush()
                db.add(UserRoleMap(employee_id=emp.id, email=email, role=role, is_active=True))
            db.commit()
        finally:
            db.close()
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def people(app):
    """name -> {"urm": user_role_maps.id, "employee": employees.id, "role": str}"""
    from sqlalchemy import select

    from ems.db import get_session
    from ems.models import Employee, UserRoleMap

    out = {}
    db = get_session()
    try:
        for name, (code, *_rest, role) in PEOPLE.items():
            emp = db.scalars(select(Employee).where(Employee.employee_id == code)).one()
            urm = db.scalars(select(UserRoleMap).where(UserRoleMap.employee_id == emp.id)).one()
            out[name] = {"urm": urm.id, "employee": emp.id, "role": role, "email": urm.email}
    finally:
        db.close()
    return out


@pytest.fixture
def auth(app, people):
    """``auth("admin")`` -> Authorization header for the seeded person."""
    from ems.jwt_utils import issue_token_pair

    def _headers(name: str) -> dict[str, str]:
        p = people[name]
        access, _refresh = issue_token_pair(
            user_id=p["urm"],
            role=p["role"],
            email=p["email"],
            employee_id=p["employee"],
            ms_graph_user_id=None,
            secret=app.config["JWT_SECRET"],
            refresh_secret=app.config["JWT_REFRESH_SECRET"],
            issuer=app.config["JWT_ISSUER"],
            audience=app.config["JWT_AUDIENCE"],
        )
        return {"Authorization": f"Bearer {access}"}

    return _headers

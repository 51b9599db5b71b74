from __future__ import annotations

import pytest

from biblecloud.auth import LocalAuthProvider, add_local_user
from biblecloud.errors import StoreError
from biblecloud.stores import READ_CHAPTERS_COLLECTION
from biblecloud.webui.app import create_app


@pytest.fixture
def account():
    return add_local_user("lector@example.com", "secreto")


@pytest.fixture
def app(store, clock, chapters, account):
    return create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test",
            "DOCUMENT_STORE": store,
            "AUTH_PROVIDER": LocalAuthProvider(),
            "CATALOG_LOADER": lambda: list(chapters),
            "CLOCK": clock,
        }
    )


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


def _login(client, password="secreto"):
    return client.post("/login", data={"email": "lector@example.com", "password": password})


def test_index_redirects_to_login_when_signed_out(client):
    response = client.get("/")

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/login")


def test_login_page_renders(client):
    response = client.get("/login")

    assert response.status_code == 200
    body = response.get_data(as_text=True)
    assert "BibleCloud" in body
    assert "Ingresar" in body


def test_login_with_wrong_password_shows_localized_error(client):
    response = _login(client, password="otra")

    assert response.status_code == 401
    assert "Contraseña incorrecta" in response.get_data(as_text=True)


def test_login_then_list_chapters(client):
    response = _login(client)
    assert response.status_code == 302

    page = client.get("/").get_data(as_text=True)
    assert "Génesis 1" in page
    assert "Juan 3" in page


def test_search_filters_list(client):
    _login(client)

    page = client.get("/?q=exo").get_data(as_text=True)

    assert "Éxodo 1" in page
    assert "Génesis 1" not in page


def test_mark_read_updates_store_and_list(client, store, account):
    _login(client)

    response = client.post("/chapters/genesis-1/read")
    assert response.status_code == 302

    stored = store.get_document(account, READ_CHAPTERS_COLLECTION, "genesis-1")
    assert len(stored["allTimestamps"]) == 1
    page = client.get("/").get_data(as_text=True)
    assert "Marcar Génesis 1 como leído nuevamente" in page


def test_unknown_chapter_returns_404(client):
    _login(client)

    assert client.post("/chapters/nope/read").status_code == 404
    assert client.get("/chapters/nope").status_code == 404


def test_save_notes_flow(client, store, account):
    _login(client)

    response = client.post("/chapters/juan-3/notes", data={"notes": "Nacer de nuevo"})
    assert response.status_code == 302

    page = client.get("/chapters/juan-3").get_data(as_text=True)
    assert "Notas guardadas!" in page
    assert "Nacer de nuevo" in page
    stored = store.get_document(account, READ_CHAPTERS_COLLECTION, "juan-3")
    assert stored["notes"] == "Nacer de nuevo"
    assert len(stored["allTimestamps"]) == 1


def test_mark_unread_requires_confirmation(client, store, account):
    _login(client)
    client.post("/chapters/genesis-2/read")

    premature = client.post("/chapters/genesis-2/unread/confirm")
    assert premature.status_code == 409
    assert store.get_document(account, READ_CHAPTERS_COLLECTION, "genesis-2") is not None

    prompt = client.post("/chapters/genesis-2/unread")
    assert prompt.status_code == 200
    assert "Se borrará el historial y las notas" in prompt.get_data(as_text=True)

    confirmed = client.post("/chapters/genesis-2/unread/confirm")
    assert confirmed.status_code == 302
    assert store.get_document(account, READ_CHAPTERS_COLLECTION, "genesis-2") is None

    status = client.get("/api/read-status").get_json()
    assert "genesis-2" not in status


def test_cancel_unread_keeps_record(client, store, account):
    _login(client)
    client.post("/chapters/genesis-2/read")
    client.post("/chapters/genesis-2/unread")

    response = client.post("/chapters/genesis-2/unread/cancel")
    assert response.status_code == 302
    assert client.post("/chapters/genesis-2/unread/confirm").status_code == 409
    assert store.get_document(account, READ_CHAPTERS_COLLECTION, "genesis-2") is not None


def test_api_chapters_reports_read_state(client):
    _login(client)
    client.post("/chapters/exodo-1/read")

    payload = client.get("/api/chapters?q=exodo").get_json()

    assert payload["searchTerm"] == "exodo"
    assert [item["id"] for item in payload["chapters"]] == ["exodo-1"]
    assert payload["chapters"][0]["isRead"] is True
    assert payload["chapters"][0]["latestReadTimestamp"]


def test_api_requires_authentication(client):
    response = client.get("/api/read-status")

    assert response.status_code == 401
    assert response.get_json() == {"error": "Not authenticated"}


def test_logout_redirects_to_login_using_forwarded_host(client):
    _login(client)

    response = client.get(
        "/logout",
        headers={"X-Forwarded-Host": "biblia.example", "X-Forwarded-Proto": "https"},
    )

    assert response.status_code == 302
    assert response.headers["Location"] == "https://biblia.example/login"
    assert client.get("/").status_code == 302


def test_logout_falls_back_to_request_host(client):
    _login(client)

    response = client.get("/logout")

    assert response.status_code == 302
    assert response.headers["Location"] == "http://localhost/login"


def test_signed_in_user_visiting_login_goes_to_list(client):
    _login(client)

    response = client.get("/login")

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/")


def test_menu_links_to_logout(client):
    _login(client)

    page = client.get("/menu").get_data(as_text=True)

    assert "/logout" in page
    assert "Cerrar Sesión" in page


def test_failed_notes_save_keeps_reading_history(client, store, monkeypatch):
    _login(client)
    client.post("/chapters/juan-3/read")

    def offline(*args, **kwargs):
        raise StoreError("offline")

    monkeypatch.setattr(store, "update_document", offline)
    response = client.post("/chapters/juan-3/notes", data={"notes": "Borrador"})

    body = response.get_data(as_text=True)
    assert response.status_code == 502
    assert "Borrador" in body
    assert "Leído:" in body
    assert "Marcar No Leído" in body

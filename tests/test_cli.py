from __future__ import annotations

from biblecloud.auth import LocalAuthProvider
from biblecloud.cli import main


def test_add_list_remove_user(capsys):
    assert main(["add", "lector@example.com", "--password", "secreto"]) == 0
    assert LocalAuthProvider().sign_in("lector@example.com", "secreto").email == "lector@example.com"

    assert main(["list"]) == 0
    assert "lector@example.com" in capsys.readouterr().out

    assert main(["remove", "lector@example.com"]) == 0
    assert main(["remove", "lector@example.com"]) == 1


def test_add_rejects_invalid_email(capsys):
    assert main(["add", "no-es-correo", "--password", "x"]) == 2
    assert "Invalid email" in capsys.readouterr().err

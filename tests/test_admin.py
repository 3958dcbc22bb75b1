import base64

import pytest

import settings
from admin import AdminConfigError, check_credentials, default_admin_config, validate_admin_config


@pytest.fixture(autouse=True)
def credentials(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_USER", "owner")
    monkeypatch.setattr(settings, "ADMIN_PASS", "s3cret")


def test_check_credentials():
    assert check_credentials("owner", "s3cret") is True
    assert check_credentials("owner", "wrong") is False
    assert check_credentials("", "") is False
    assert check_credentials(None, None) is False


def test_defaults_come_from_settings():
    config = default_admin_config().to_dict()
    assert config == {
        "ownerName": settings.OWNER_NAME,
        "ownerBio": settings.OWNER_BIO,
        "profileImage": settings.OWNER_IMAGE,
    }


def test_valid_config_is_trimmed():
    config = validate_admin_config({
        "ownerName": "  Ada Lovelace ",
        "ownerBio": "Mathematician.",
        "profileImage": "https://example.com/ada.png",
    })
    assert config.ownerName == "Ada Lovelace"
    assert config.profileImage == "https://example.com/ada.png"


def test_uploaded_image_data_uri():
    uri = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n\x1a\n").decode()
    assert validate_admin_config({"ownerName": "Ada", "profileImage": uri}).profileImage == uri


def test_blank_image_falls_back_to_default():
    assert validate_admin_config({"ownerName": "Ada"}).profileImage == settings.OWNER_IMAGE


def test_oversized_image(monkeypatch):
    monkeypatch.setattr(settings, "MAX_AVATAR_KB", 1)
    uri = "data:image/png;base64," + base64.b64encode(b"x" * 2048).decode()
    with pytest.raises(AdminConfigError, match="under 1 KB"):
        validate_admin_config({"ownerName": "Ada", "profileImage": uri})


@pytest.mark.parametrize("data,message", [
    ({"ownerName": ""}, "required"),
    ({"ownerName": "x" * 81}, "at most 80"),
    ({"ownerName": "Ada", "ownerBio": "b" * 601}, "at most 600"),
    ({"ownerName": "Ada", "profileImage": "javascript:alert(1)"}, "http"),
    ({"ownerName": "Ada", "profileImage": "data:image/png;base64,@@@"}, "base64"),
    ("not a dict", "object"),
])
def test_invalid_configs(data, message):
    with pytest.raises(AdminConfigError, match=message):
        validate_admin_config(data)

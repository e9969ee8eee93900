import json
from unittest.mock import MagicMock, patch

import pytest

from feed_push.firebase.firebase import FirebaseConnection, connect
from feed_push.notifications.errors import ConfigurationError


@pytest.fixture(autouse=True)
def reset_connection():
    FirebaseConnection._instance = None
    yield
    FirebaseConnection._instance = None


def test_connect_initializes_app_from_double_encoded_secret(settings):
    settings.firebase_secret = json.dumps(json.dumps({"type": "service_account"}))
    app = MagicMock()
    with patch("feed_push.firebase.firebase.firebase_admin.get_app", side_effect=ValueError("no app")), \
            patch("feed_push.firebase.firebase.credentials.Certificate") as certificate, \
            patch("feed_push.firebase.firebase.firebase_admin.initialize_app", return_value=app) as initialize_app, \
            patch("feed_push.firebase.firebase.firestore_async.client") as client:
        connection = connect(settings)

    certificate.assert_called_once_with({"type": "service_account"})
    assert initialize_app.call_args.kwargs["options"] == {"projectId": "demo-project"}
    client.assert_called_once_with(app)
    assert connection.get_app() is app
    assert connect(settings) is connection


def test_connect_reuses_existing_app(settings):
    app = MagicMock()
    with patch("feed_push.firebase.firebase.firebase_admin.get_app", return_value=app), \
            patch("feed_push.firebase.firebase.firebase_admin.initialize_app") as initialize_app, \
            patch("feed_push.firebase.firebase.firestore_async.client"):
        connection = connect(settings)

    initialize_app.assert_not_called()
    assert connection.get_app() is app


def test_connect_rejects_invalid_secret(settings):
    settings.firebase_secret = "{not json"
    with patch("feed_push.firebase.firebase.firebase_admin.get_app", side_effect=ValueError("no app")):
        with pytest.raises(ConfigurationError) as exc_info:
            connect(settings)
    assert "FIREBASE_SECRET" in exc_info.value.message

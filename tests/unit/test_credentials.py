"""Unit tests for credentials and credential providers."""

import json

import pytest

from watson_core.config.credentials import (
    ConfigFileCredentialProvider,
    CredentialProvider,
    Credentials,
    StaticCredentialProvider,
)
from watson_core.exceptions import ConfigurationError


class TestCredentials:
    """Tests for the Credentials model."""

    def test_basic_auth_header(self):
        creds = Credentials(url="https://example.com", user="user", password="secret")

        assert creds.has_basic_auth is True
        assert creds.auth_headers() == {"Authorization": "Basic dXNlcjpzZWNyZXQ="}

    def test_token_preferred_over_basic_auth(self):
        creds = Credentials(url="https://example.com", user="user", password="secret", token="abc")

        assert creds.auth_headers() == {"Authorization": "Bearer abc"}

    def test_no_auth(self):
        creds = Credentials(url="https://example.com")

        assert creds.has_basic_auth is False
        assert creds.auth_headers() == {}

    def test_repr_hides_secrets(self):
        creds = Credentials(service_id="SpeechToTextV1", url="https://example.com", password="secret")

        assert "secret" not in repr(creds)

    def test_legacy_field_names(self):
        """Test that m_-prefixed keys from older config files are accepted."""
        creds = Credentials.model_validate({
            "m_ServiceID": "SpeechToTextV1",
            "m_URL": "https://stream.example.com/speech-to-text/api",
            "m_User": "user",
            "m_Password": "secret",
        })

        assert creds.service_id == "SpeechToTextV1"
        assert creds.url == "https://stream.example.com/speech-to-text/api"
        assert creds.user == "user"

    def test_credentials_are_immutable(self):
        creds = Credentials(url="https://example.com")

        with pytest.raises(Exception):
            creds.url = "https://other.example.com"


class TestStaticCredentialProvider:
    """Tests for the in-memory provider."""

    def test_lookup(self, credential_provider):
        creds = credential_provider.find_credentials("SpeechToTextV1")

        assert creds is not None
        assert creds.user == "user"
        assert "LanguageTranslatorV2" in credential_provider
        assert len(credential_provider) == 2

    def test_unknown_service(self, credential_provider):
        assert credential_provider.find_credentials("VisualRecognitionV3") is None

    def test_dict_keys_override_service_id(self):
        provider = StaticCredentialProvider({"Custom": Credentials(url="https://example.com")})

        assert provider.find_credentials("Custom") is not None

    def test_missing_service_id_rejected(self):
        with pytest.raises(ConfigurationError):
            StaticCredentialProvider([Credentials(url="https://example.com")])

    def test_satisfies_protocol(self, credential_provider):
        assert isinstance(credential_provider, CredentialProvider)


class TestConfigFileCredentialProvider:
    """Tests for loading credentials from JSON files."""

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "credentials": [
                {
                    "service_id": "SpeechToTextV1",
                    "url": "https://stream.example.com/speech-to-text/api",
                    "user": "user",
                    "password": "secret",
                },
                {
                    "m_ServiceID": "TextToSpeechV1",
                    "m_URL": "https://stream.example.com/text-to-speech/api",
                    "m_Token": "tts-token",
                },
            ],
        }))

        provider = ConfigFileCredentialProvider.from_file(path)

        assert len(provider) == 2
        assert provider.path == str(path)
        assert provider.find_credentials("TextToSpeechV1").token == "tts-token"

    def test_legacy_container_key(self):
        raw = json.dumps({"m_Credentials": [{"m_ServiceID": "A", "m_URL": "https://a.example.com"}]})

        provider = ConfigFileCredentialProvider.from_json(raw)

        assert provider.find_credentials("A").url == "https://a.example.com"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigFileCredentialProvider.from_file(tmp_path / "missing.json")

        assert exc_info.value.code == "config_error"
        assert exc_info.value.details["path"].endswith("missing.json")

    def test_invalid_json(self):
        with pytest.raises(ConfigurationError):
            ConfigFileCredentialProvider.from_json("{not json")

    def test_invalid_entry(self):
        raw = json.dumps({"credentials": [{"service_id": "NoUrl"}]})

        with pytest.raises(ConfigurationError):
            ConfigFileCredentialProvider.from_json(raw)

"""Test suite for the configuration management library."""

import os
from unittest import TestCase, mock

import pytest

from services.common.config import (
    BaseConfig,
    ConfigBuilder,
    Environment,
    EnvironmentLoader,
    FieldDefinition,
    RequiredFieldError,
    ServiceConfig,
    ValidationError,
    create_field_definition,
    validate_non_empty,
    validate_port,
)
from services.common.service_configs import (
    AudioConfig,
    DiscordConfig,
    HttpConfig,
    LoggingConfig,
    StorageConfig,
)
from services.soundboard.config import load_config


class SampleConfig(BaseConfig):
    @classmethod
    def get_field_definitions(cls):
        return [
            FieldDefinition(name="name", field_type=str, default="sample", validator=validate_non_empty),
            FieldDefinition(name="count", field_type=int, default=3, min_value=0, max_value=10),
            FieldDefinition(name="ratio", field_type=float, default=0.5),
            FieldDefinition(name="token", field_type=str),
        ]


class TestFieldDefinition(TestCase):
    """Test FieldDefinition class."""

    @pytest.mark.unit
    def test_required_field_cannot_have_default(self):
        with self.assertRaises(ValueError):
            FieldDefinition(name="x", field_type=str, default="a", required=True)

    @pytest.mark.unit
    def test_default_must_be_in_choices(self):
        with self.assertRaises(ValueError):
            FieldDefinition(name="x", field_type=str, default="c", choices=["a", "b"])

    @pytest.mark.unit
    def test_create_field_definition(self):
        field = create_field_definition("port", int, default=8080, env_var="HTTP_PORT")

        self.assertEqual(field.name, "port")
        self.assertIs(field.field_type, int)
        self.assertEqual(field.env_var, "HTTP_PORT")
        self.assertFalse(field.required)

    @pytest.mark.unit
    def test_problem_reports_reason(self):
        field = FieldDefinition(name="volume", field_type=int, min_value=0, max_value=100)

        self.assertIsNone(field.problem(50))
        self.assertEqual(field.problem(101), "must be <= 100")
        self.assertEqual(field.problem("loud"), "expected int, got str")


class TestValidators(TestCase):
    @pytest.mark.unit
    def test_validate_port(self):
        self.assertTrue(validate_port(1))
        self.assertTrue(validate_port(65535))
        self.assertFalse(validate_port(0))
        self.assertFalse(validate_port(70000))

    @pytest.mark.unit
    def test_validate_non_empty(self):
        self.assertTrue(validate_non_empty("!"))
        self.assertFalse(validate_non_empty("   "))


class TestBaseConfig(TestCase):
    """Test section validation."""

    @pytest.mark.unit
    def test_valid_config(self):
        SampleConfig().validate()

    @pytest.mark.unit
    def test_int_accepted_for_float(self):
        SampleConfig(ratio=1).validate()

    @pytest.mark.unit
    def test_wrong_type_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            SampleConfig(count="3").validate()
        self.assertEqual(ctx.exception.field, "count")

    @pytest.mark.unit
    def test_bool_is_not_an_int(self):
        with self.assertRaises(ValidationError):
            SampleConfig(count=True).validate()

    @pytest.mark.unit
    def test_range_checked(self):
        with self.assertRaises(ValidationError):
            SampleConfig(count=11).validate()
        with self.assertRaises(ValidationError):
            SampleConfig(count=-1).validate()

    @pytest.mark.unit
    def test_custom_validator(self):
        with self.assertRaises(ValidationError):
            SampleConfig(name=" ").validate()

    @pytest.mark.unit
    def test_to_dict(self):
        self.assertEqual(
            SampleConfig().to_dict(), {"name": "sample", "count": 3, "ratio": 0.5}
        )

    @pytest.mark.unit
    def test_fields_become_attributes(self):
        config = SampleConfig(count=4)

        self.assertEqual(config.count, 4)
        self.assertEqual(config.name, "sample")
        self.assertIsNone(config.token)

    @pytest.mark.unit
    def test_unknown_field_rejected(self):
        with self.assertRaises(TypeError):
            SampleConfig(volume=3)

    @pytest.mark.unit
    def test_explicit_environ_mapping(self):
        loader = EnvironmentLoader("soundboard", environ={"SOUNDBOARD_RATIO": "2"})

        config = loader.load_config(SampleConfig)

        self.assertEqual(config.ratio, 2.0)
        self.assertEqual(loader.variable_for(SampleConfig.get_field_definitions()[0]), "SOUNDBOARD_NAME")


class TestEnvironmentLoader(TestCase):
    """Test loading values from the environment."""

    @pytest.mark.unit
    def test_default_when_unset(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            config = EnvironmentLoader("soundboard").load_config(SampleConfig)
        self.assertEqual(config.count, 3)

    @pytest.mark.unit
    def test_prefixed_variable(self):
        with mock.patch.dict(os.environ, {"SOUNDBOARD_COUNT": "7"}, clear=True):
            config = EnvironmentLoader("soundboard").load_config(SampleConfig)
        self.assertEqual(config.count, 7)

    @pytest.mark.unit
    def test_conversion_failure(self):
        with mock.patch.dict(os.environ, {"SOUNDBOARD_COUNT": "many"}, clear=True):
            with self.assertRaises(ValidationError):
                EnvironmentLoader("soundboard").load_config(SampleConfig)

    @pytest.mark.unit
    def test_required_field_missing(self):
        field = FieldDefinition(name="token", field_type=str, required=True)
        with mock.patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(RequiredFieldError):
                EnvironmentLoader().load_field(field)

    @pytest.mark.unit
    def test_convert_value(self):
        loader = EnvironmentLoader()
        self.assertIs(loader._convert_value("yes", bool), True)
        self.assertIs(loader._convert_value("off", bool), False)
        self.assertEqual(loader._convert_value("2.5", float), 2.5)
        self.assertEqual(loader._convert_value("a, b,", list), ["a", "b"])


class TestServiceConfig(TestCase):
    """Test the assembled service configuration."""

    @pytest.mark.unit
    def test_builder_sections_are_attributes(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            config = (
                ConfigBuilder.for_service("soundboard", Environment.TESTING)
                .add_config("http", HttpConfig)
                .load()
            )

        self.assertIsInstance(config, ServiceConfig)
        self.assertEqual(config.http.port, 8080)
        self.assertIs(config.get_config("http"), config.http)
        with self.assertRaises(AttributeError):
            _ = config.missing
        with self.assertRaises(KeyError):
            config.get_config("missing")

    @pytest.mark.unit
    def test_to_dict(self):
        config = ServiceConfig("soundboard", Environment.TESTING, {"http": HttpConfig()})

        self.assertEqual(
            config.to_dict(),
            {
                "service_name": "soundboard",
                "environment": "testing",
                "configs": {"http": {"host": "0.0.0.0", "port": 8080}},  # noqa: S104
            },
        )


class TestSoundboardConfig(TestCase):
    """Test the soundboard sections and environment variables."""

    @pytest.mark.unit
    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            config = load_config()

        self.assertEqual(config.discord.token, "")
        self.assertEqual(config.discord.command_prefix, "!")
        self.assertEqual(config.discord.voice_connect_timeout_seconds, 20.0)
        self.assertEqual(config.audio.music_volume, 85)
        self.assertEqual(config.audio.effects_volume, 90)
        self.assertEqual(config.audio.fade_in_seconds, 0.05)
        self.assertEqual(config.storage.music_dir, "storage/music")
        self.assertEqual(config.logging.level, "INFO")
        self.assertTrue(config.logging.json_logs)

    @pytest.mark.unit
    def test_environment_overrides(self):
        env = {
            "DISCORD_BOT_TOKEN": "secret",
            "SOUNDBOARD_PREFIX": "?",
            "DISCORD_VOICE_CONNECT_TIMEOUT": "5",
            "AUDIO_MUSIC_VOLUME": "40",
            "AUDIO_FFMPEG_PATH": "/opt/ffmpeg",
            "SOUNDBOARD_SNAPSHOT_PATH": "/data/snapshots.json",
            "LOG_LEVEL": "DEBUG",
            "LOG_JSON": "false",
            "HTTP_PORT": "9000",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            config = load_config()

        self.assertEqual(config.discord.token, "secret")
        self.assertEqual(config.discord.command_prefix, "?")
        self.assertEqual(config.discord.voice_connect_timeout_seconds, 5.0)
        self.assertEqual(config.audio.music_volume, 40)
        self.assertEqual(config.audio.ffmpeg_path, "/opt/ffmpeg")
        self.assertEqual(config.storage.snapshot_path, "/data/snapshots.json")
        self.assertEqual(config.logging.level, "DEBUG")
        self.assertFalse(config.logging.json_logs)
        self.assertEqual(config.http.port, 9000)

    @pytest.mark.unit
    def test_volume_out_of_range(self):
        with mock.patch.dict(os.environ, {"AUDIO_EFFECTS_VOLUME": "150"}, clear=True):
            with self.assertRaises(ValidationError):
                load_config()

    @pytest.mark.unit
    def test_invalid_log_level(self):
        with mock.patch.dict(os.environ, {"LOG_LEVEL": "LOUD"}, clear=True):
            with self.assertRaises(ValidationError):
                load_config()

    @pytest.mark.unit
    def test_section_classes(self):
        self.assertEqual(DiscordConfig().voice_connect_timeout_seconds, 20.0)
        self.assertEqual(AudioConfig().max_buffer_seconds, 1.0)
        self.assertEqual(StorageConfig().effects_dir, "storage/effects")
        self.assertEqual(LoggingConfig().service_name, None)

from timetable_server.config import Settings
from timetable_solver import MAX_ATTEMPTS


def test_defaults():
    s = Settings()
    assert s.cors_origin_list == ["http://localhost:3000"]
    assert s.max_attempts == MAX_ATTEMPTS
    assert s.sample_data_path.is_file()
    assert s.sample_data_path.parent.parent.name == "timetable_server"


def test_single_cors_origin_from_env(monkeypatch):
    monkeypatch.setenv("TIMETABLE_CORS_ORIGINS", "https://school.example")
    assert Settings().cors_origin_list == ["https://school.example"]


def test_cors_origins_comma_separated(monkeypatch):
    monkeypatch.setenv("TIMETABLE_CORS_ORIGINS", "https://school.example/, http://localhost:3000,")
    assert Settings().cors_origin_list == ["https://school.example", "http://localhost:3000"]


def test_environment_and_attempts_from_env(monkeypatch):
    monkeypatch.setenv("TIMETABLE_ENVIRONMENT", " Production ")
    monkeypatch.setenv("TIMETABLE_MAX_ATTEMPTS", "10")
    s = Settings()
    assert s.environment == "production"
    assert s.max_attempts == 10

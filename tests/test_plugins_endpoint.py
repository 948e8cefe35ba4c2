from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from src.auth import dependencies as auth_dependencies
from src.auth.context import Identity
from src.auth.dependencies import get_optional_identity
from src.main import app
from src.providers.nominatim.client import NominatimProviderError
from src.providers.open_meteo.client import OpenMeteoProviderError
from src.providers.osrm.client import OsrmProviderError
from src.routers import plugins as plugins_router


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, table_name: str, db: "FakeSupabase"):
        self.table_name = table_name
        self.db = db
        self.operation = "select"
        self.filters = []
        self.payload = None
        self.on_conflict = ""
        self.order_key = None
        self.order_desc = False

    def select(self, _fields: str):
        self.operation = "select"
        return self

    def insert(self, payload: dict):
        self.operation = "insert"
        self.payload = payload
        return self

    def upsert(self, payload: dict, on_conflict: str = ""):
        self.operation = "upsert"
        self.payload = payload
        self.on_conflict = on_conflict
        return self

    def eq(self, key: str, value):
        self.filters.append((key, value))
        return self

    def order(self, key: str, desc: bool = False):
        self.order_key = key
        self.order_desc = desc
        return self

    def limit(self, _value: int):
        return self

    def execute(self):
        if self.table_name in self.db.failing:
            raise RuntimeError("store offline")
        table = self.db.tables.setdefault(self.table_name, [])
        if self.operation == "insert":
            table.append(dict(self.payload))
            return FakeResponse([dict(self.payload)])
        if self.operation == "upsert":
            keys = [key.strip() for key in self.on_conflict.split(",") if key.strip()]
            for row in table:
                if all(row.get(key) == self.payload.get(key) for key in keys):
                    row.update(self.payload)
                    return FakeResponse([dict(row)])
            table.append(dict(self.payload))
            return FakeResponse([dict(self.payload)])
        rows = [dict(row) for row in table if all(row.get(key) == value for key, value in self.filters)]
        if self.order_key:
            rows.sort(key=lambda row: row.get(self.order_key) or "", reverse=self.order_desc)
        return FakeResponse(rows)


class FakeSupabase:
    def __init__(self, tables: dict, failing: set | None = None):
        self.tables = tables
        self.failing = failing or set()

    def table(self, table_name: str):
        return FakeQuery(table_name, self)


def _set_identity(user_id: str | None):
    async def _override():
        return Identity(user_id=user_id) if user_id else None

    app.dependency_overrides[get_optional_identity] = _override


def _clear():
    app.dependency_overrides.clear()


def _install(monkeypatch, fake_db):
    monkeypatch.setattr(plugins_router, "supabase", fake_db)
    monkeypatch.setattr(auth_dependencies, "supabase", fake_db)


def _ago(**delta) -> str:
    return (datetime.now(timezone.utc) - timedelta(**delta)).isoformat()


def _base_tables():
    return {
        "team_members": [{"user_id": "u-1", "org_id": "org-1", "role": "member"}],
        "org_settings": [],
        "fuel_cache": [],
        "route_cache": [],
        "weather_cache": [],
        "plugin_runs": [],
        "plugin_status": [],
    }


def _fail_route(**_kwargs):
    raise OsrmProviderError("OSRM connectivity error: timed out")


def test_plugins_require_session(monkeypatch):
    _install(monkeypatch, FakeSupabase(_base_tables()))
    _set_identity(None)
    client = TestClient(app)

    response = client.get("/api/plugins/status")
    _clear()

    assert response.status_code == 401


def test_status_lists_every_registered_plugin(monkeypatch):
    tables = _base_tables()
    tables["plugin_status"] = [{"plugin_key": "fuel", "enabled": False, "last_error": "boom"}]
    _install(monkeypatch, FakeSupabase(tables))
    _set_identity("u-1")
    client = TestClient(app)

    response = client.get("/api/plugins/status")
    _clear()

    assert response.status_code == 200
    by_key = {row["key"]: row for row in response.json()}
    assert set(by_key) == {"weather", "fuel", "route", "calendar_ics"}
    assert by_key["fuel"]["enabled"] is False
    assert by_key["fuel"]["last_error"] == "boom"
    assert by_key["calendar_ics"]["ttl_seconds"] == 0
    assert by_key["route"]["fallback_strategy"] == "haversine"


def test_fresh_fuel_cache_is_a_hit(monkeypatch):
    tables = _base_tables()
    tables["fuel_cache"] = [
        {"scope": "org-1", "country": "PT", "fuel_type": "diesel", "price_per_liter": 1.59, "source": "org_settings", "fetched_at": _ago(hours=1)}
    ]
    _install(monkeypatch, FakeSupabase(tables))
    _set_identity("u-1")
    client = TestClient(app)

    response = client.get("/api/plugins/fuel", params={"country": "pt", "type": "gasoleo"})
    _clear()

    assert response.status_code == 200
    body = response.json()
    assert body["cache_hit"] is True
    assert body["price_per_liter"] == 1.59
    assert tables["plugin_runs"][0]["cache_hit"] is True
    assert tables["plugin_status"][0]["plugin_key"] == "fuel"


def test_expired_fuel_cache_refreshes_from_org_settings(monkeypatch):
    tables = _base_tables()
    tables["fuel_cache"] = [
        {"scope": "org-1", "country": "PT", "fuel_type": "diesel", "price_per_liter": 1.40, "source": "static", "fetched_at": _ago(hours=25)}
    ]
    tables["org_settings"] = [{"org_id": "org-1", "diesel_price_per_liter": 1.55, "petrol_price_per_liter": 1.75}]
    _install(monkeypatch, FakeSupabase(tables))
    _set_identity("u-1")
    client = TestClient(app)

    response = client.get("/api/plugins/fuel")
    _clear()

    body = response.json()
    assert body["cache_hit"] is False
    assert body["source"] == "org_settings"
    assert body["price_per_liter"] == 1.55
    assert tables["fuel_cache"][0]["price_per_liter"] == 1.55


def test_fuel_without_org_price_uses_static_table(monkeypatch):
    tables = _base_tables()
    _install(monkeypatch, FakeSupabase(tables))
    _set_identity("u-1")
    client = TestClient(app)

    body = client.get("/api/plugins/fuel", params={"type": "petrol"}).json()
    _clear()

    assert body["source"] == "static"
    assert body["fuel_type"] == "gasoline"
    assert body["price_per_liter"] == 1.77


def test_fuel_settings_failure_serves_recent_stale_cache(monkeypatch):
    tables = _base_tables()
    tables["fuel_cache"] = [
        {"scope": "org-1", "country": "PT", "fuel_type": "diesel", "price_per_liter": 1.50, "source": "org_settings", "fetched_at": _ago(hours=30)}
    ]
    _install(monkeypatch, FakeSupabase(tables, failing={"org_settings"}))
    _set_identity("u-1")
    client = TestClient(app)

    body = client.get("/api/plugins/fuel").json()
    _clear()

    assert body["stale"] is True
    assert body["price_per_liter"] == 1.50
    assert body["source"] == "fuel_cache_stale"


def test_fresh_route_cache_skips_osrm(monkeypatch):
    tables = _base_tables()
    tables["route_cache"] = [
        {
            "origin_key": "38.7223,-9.1393",
            "destination_key": "41.1579,-8.6291",
            "travel_km": 313.5,
            "travel_minutes": 184,
            "source": "osrm",
            "data": {},
            "fetched_at": _ago(days=1),
        }
    ]
    _install(monkeypatch, FakeSupabase(tables))
    monkeypatch.setattr(plugins_router, "driving_route", _fail_route)
    _set_identity("u-1")
    client = TestClient(app)

    response = client.get(
        "/api/plugins/route",
        params={"from_lat": 38.7223, "from_lng": -9.1393, "to_lat": 41.1579, "to_lng": -8.6291},
    )
    _clear()

    body = response.json()
    assert body["cache_hit"] is True
    assert body["travel_km"] == 313.5


def test_route_from_osrm_is_cached(monkeypatch):
    tables = _base_tables()
    _install(monkeypatch, FakeSupabase(tables))
    monkeypatch.setattr(
        plugins_router,
        "driving_route",
        lambda **kwargs: {"travel_km": 313.5, "travel_minutes": 184, "raw": {"code": "Ok"}},
    )
    _set_identity("u-1")
    client = TestClient(app)

    body = client.get(
        "/api/plugins/route",
        params={"from_lat": 38.7223, "from_lng": -9.1393, "to_lat": 41.1579, "to_lng": -8.6291},
    ).json()
    _clear()

    assert body["source"] == "osrm"
    assert body["cache_hit"] is False
    assert tables["route_cache"][0]["origin_key"] == "38.7223,-9.1393"
    assert tables["plugin_status"][0]["last_success_at"] is not None


def test_route_falls_back_to_haversine_when_osrm_fails(monkeypatch):
    tables = _base_tables()
    _install(monkeypatch, FakeSupabase(tables))
    monkeypatch.setattr(plugins_router, "driving_route", _fail_route)
    _set_identity("u-1")
    client = TestClient(app)

    response = client.get(
        "/api/plugins/route",
        params={"from_lat": 38.7223, "from_lng": -9.1393, "to_lat": 41.1579, "to_lng": -8.6291},
    )
    _clear()

    assert response.status_code == 200
    body = response.json()
    assert body["source"] == "haversine"
    assert 350 < body["travel_km"] < 365
    assert body["warning"]
    assert tables["plugin_runs"][0]["status"] == "error"
    assert tables["plugin_status"][0]["last_error"].startswith("OSRM connectivity error")


def test_route_rejects_out_of_range_coordinates(monkeypatch):
    _install(monkeypatch, FakeSupabase(_base_tables()))
    _set_identity("u-1")
    client = TestClient(app)

    response = client.get(
        "/api/plugins/route",
        params={"from_lat": 91, "from_lng": 0, "to_lat": 0, "to_lng": 0},
    )
    _clear()

    assert response.status_code == 422


def test_run_log_failure_does_not_fail_the_request(monkeypatch):
    tables = _base_tables()
    _install(monkeypatch, FakeSupabase(tables, failing={"plugin_runs"}))
    _set_identity("u-1")
    client = TestClient(app)

    response = client.get("/api/plugins/fuel")
    _clear()

    assert response.status_code == 200
    assert response.json()["source"] == "static"


def test_fuel_prices_do_not_leak_between_orgs(monkeypatch):
    tables = _base_tables()
    tables["team_members"].append({"user_id": "u-2", "org_id": "org-2", "role": "member"})
    tables["org_settings"] = [{"org_id": "org-1", "diesel_price_per_liter": 1.99, "petrol_price_per_liter": 2.10}]
    _install(monkeypatch, FakeSupabase(tables))
    client = TestClient(app)

    _set_identity("u-1")
    first = client.get("/api/plugins/fuel").json()
    _set_identity("u-2")
    second = client.get("/api/plugins/fuel").json()
    _clear()

    assert first["price_per_liter"] == 1.99
    assert first["source"] == "org_settings"
    assert second["price_per_liter"] == 1.62
    assert second["source"] == "static"
    assert second["cache_hit"] is False
    assert {row["scope"] for row in tables["fuel_cache"]} == {"org-1", "org-2"}


def test_fuel_for_user_without_org_ignores_org_settings(monkeypatch):
    tables = _base_tables()
    tables["client_users"] = [{"id": "cu-1", "user_id": "u-client", "client_id": "c-1"}]
    tables["org_settings"] = [{"org_id": "org-1", "diesel_price_per_liter": 1.99}]
    tables["fuel_cache"] = [
        {"scope": "org-1", "country": "PT", "fuel_type": "diesel", "price_per_liter": 1.99, "source": "org_settings",
         "fetched_at": _ago(hours=1)}
    ]
    _install(monkeypatch, FakeSupabase(tables))
    _set_identity("u-client")
    client = TestClient(app)

    body = client.get("/api/plugins/fuel").json()
    _clear()

    assert body["price_per_liter"] == 1.62
    assert body["source"] == "static"
    assert tables["fuel_cache"][-1]["scope"] == "global"


def test_zero_distance_route_cache_is_a_hit(monkeypatch):
    tables = _base_tables()
    tables["route_cache"] = [
        {
            "origin_key": "38.7223,-9.1393",
            "destination_key": "38.7223,-9.1393",
            "travel_km": 0,
            "travel_minutes": 0,
            "source": "osrm",
            "data": {},
            "fetched_at": _ago(hours=2),
        }
    ]
    _install(monkeypatch, FakeSupabase(tables))
    monkeypatch.setattr(plugins_router, "driving_route", _fail_route)
    _set_identity("u-1")
    client = TestClient(app)

    body = client.get(
        "/api/plugins/route",
        params={"from_lat": 38.7223, "from_lng": -9.1393, "to_lat": 38.7223, "to_lng": -9.1393},
    ).json()
    _clear()

    assert body["cache_hit"] is True
    assert body["source"] == "osrm"
    assert body["travel_km"] == 0
    assert tables["plugin_runs"][0]["status"] == "ok"


def _forecast(**_kwargs):
    return {
        "forecast_start": "2026-06-01",
        "forecast_end": "2026-06-01",
        "days": [
            {
                "date": "2026-06-01",
                "weather_code": 2,
                "weather_label": "Partly cloudy",
                "temp_max": 24.5,
                "temp_min": 15.1,
                "precipitation_sum": 0.0,
                "windspeed_max": 18.2,
            }
        ],
    }


def _fail_forecast(**_kwargs):
    raise OpenMeteoProviderError("Open-Meteo connectivity error: timed out")


def _weather_row(hours_old: int) -> dict:
    fetched_at = _ago(hours=hours_old)
    return {
        "location": "38.7223,-9.1393",
        "date": datetime.now(timezone.utc).date().isoformat(),
        "lat": 38.7223,
        "lon": -9.1393,
        "data": {**_forecast(), "fetched_at": fetched_at},
        "fetched_at": fetched_at,
    }


def test_weather_live_forecast_is_cached(monkeypatch):
    tables = _base_tables()
    _install(monkeypatch, FakeSupabase(tables))
    calls = []
    monkeypatch.setattr(plugins_router, "daily_forecast", lambda **kwargs: calls.append(kwargs) or _forecast())
    _set_identity("u-1")
    client = TestClient(app)

    response = client.get("/api/plugins/weather", params={"lat": 38.7223, "lng": -9.1393})
    _clear()

    assert response.status_code == 200
    body = response.json()
    assert body["source"] == "open-meteo"
    assert body["cache_hit"] is False
    assert body["days"][0]["weather_label"] == "Partly cloudy"
    assert calls[0]["lat"] == 38.7223
    assert tables["weather_cache"][0]["location"] == "38.7223,-9.1393"
    assert tables["weather_cache"][0]["date"] == datetime.now(timezone.utc).date().isoformat()
    assert tables["plugin_runs"][0]["plugin_key"] == "weather"


def test_fresh_weather_cache_skips_provider(monkeypatch):
    tables = _base_tables()
    tables["weather_cache"] = [_weather_row(hours_old=2)]
    _install(monkeypatch, FakeSupabase(tables))
    monkeypatch.setattr(plugins_router, "daily_forecast", _fail_forecast)
    _set_identity("u-1")
    client = TestClient(app)

    body = client.get("/api/plugins/weather", params={"lat": 38.7223, "lng": -9.1393}).json()
    _clear()

    assert body["source"] == "weather_cache"
    assert body["cache_hit"] is True
    assert body["stale"] is False
    assert body["forecast_start"] == "2026-06-01"


def test_weather_provider_failure_serves_stale_cache(monkeypatch):
    tables = _base_tables()
    tables["weather_cache"] = [_weather_row(hours_old=10)]
    _install(monkeypatch, FakeSupabase(tables))
    monkeypatch.setattr(plugins_router, "daily_forecast", _fail_forecast)
    _set_identity("u-1")
    client = TestClient(app)

    body = client.get("/api/plugins/weather", params={"lat": 38.7223, "lng": -9.1393}).json()
    _clear()

    assert body["source"] == "weather_cache_stale"
    assert body["stale"] is True
    assert body["warning"]
    assert body["days"][0]["temp_max"] == 24.5


def test_weather_provider_failure_without_cache_asks_for_manual_entry(monkeypatch):
    tables = _base_tables()
    _install(monkeypatch, FakeSupabase(tables))
    monkeypatch.setattr(plugins_router, "daily_forecast", _fail_forecast)
    _set_identity("u-1")
    client = TestClient(app)

    response = client.get("/api/plugins/weather", params={"lat": 38.7223, "lng": -9.1393})
    _clear()

    assert response.status_code == 502
    assert response.json()["detail"]["fallback"] == "last_cache_or_manual"
    assert tables["plugin_runs"][0]["status"] == "error"
    assert tables["weather_cache"] == []


def test_weather_geocodes_location_names(monkeypatch):
    tables = _base_tables()
    _install(monkeypatch, FakeSupabase(tables))
    monkeypatch.setattr(
        plugins_router, "geocode", lambda **kwargs: {"lat": 41.1579, "lng": -8.6291, "name": kwargs["query"]}
    )
    monkeypatch.setattr(plugins_router, "daily_forecast", _forecast)
    _set_identity("u-1")
    client = TestClient(app)

    body = client.get("/api/plugins/weather", params={"location": " Porto "}).json()
    _clear()

    assert body["location"] == {"lat": 41.1579, "lng": -8.6291, "name": "Porto"}
    assert tables["weather_cache"][0]["location"] == "41.1579,-8.6291"


def test_weather_requires_location_or_coordinates(monkeypatch):
    _install(monkeypatch, FakeSupabase(_base_tables()))
    _set_identity("u-1")
    client = TestClient(app)

    response = client.get("/api/plugins/weather", params={"lat": 38.7})
    _clear()

    assert response.status_code == 400


def test_weather_unknown_location_is_404(monkeypatch):
    _install(monkeypatch, FakeSupabase(_base_tables()))
    monkeypatch.setattr(plugins_router, "geocode", lambda **kwargs: None)
    _set_identity("u-1")
    client = TestClient(app)

    response = client.get("/api/plugins/weather", params={"location": "Nowhere"})
    _clear()

    assert response.status_code == 404


def test_weather_geocoder_outage_is_502(monkeypatch):
    def _fail_geocode(**_kwargs):
        raise NominatimProviderError("Nominatim connectivity error: timed out")

    _install(monkeypatch, FakeSupabase(_base_tables()))
    monkeypatch.setattr(plugins_router, "geocode", _fail_geocode)
    _set_identity("u-1")
    client = TestClient(app)

    response = client.get("/api/plugins/weather", params={"location": "Lisboa"})
    _clear()

    assert response.status_code == 502
    assert response.json()["detail"] == "Geocoding unavailable"

from __future__ import annotations

import json

from railcam.domain.models import RailcamStation
from railcam.services.station_directory import (
    StationDirectory,
    embed_url,
    load_directory,
    load_stations,
    save_stations,
)


def test_multi_facility_city_prefers_named_stop(directory):
    st = directory.find_station("Kansas City, MO")
    assert st is not None
    assert st.name == "Kansas City - Union Station"


def test_region_suffix_is_stripped(directory):
    st = directory.find_station("Las Vegas, NM")
    assert st is not None
    assert st.name == "Las Vegas"


def test_no_match_without_entry():
    d = StationDirectory([RailcamStation(name="Gallup", video_reference="x")])
    assert d.find_station("Las Vegas, NM") is None


def test_unknown_name_is_not_found(directory):
    assert directory.find_station("Nowhere Junction, ZZ") is None
    assert directory.find_station("") is None
    assert directory.find_station(None) is None


def test_facility_suffix_matches_plain_city(directory):
    assert directory.find_station("Flagstaff, AZ").name == "Flagstaff - Amtrak Station"
    assert directory.find_station("Barstow").name == "Barstow - Harvey House Railroad Depot"


def test_exact_match_is_case_insensitive(directory):
    assert directory.find_station("  winslow ").name == "Winslow"


def test_railcam_for_skips_disabled_stations(directory):
    assert directory.find_station("Topeka, KS") is not None
    assert directory.railcam_for("Topeka, KS") is None
    assert directory.railcam_for("Gallup, NM").name == "Gallup"


def test_enabled_listing(directory):
    enabled = {st.name for st in directory.list_enabled()}
    assert "Kingman" in enabled
    assert "Chicago" not in enabled
    assert len(directory) == len(directory.list_all())


def test_embed_url_variants():
    assert (
        embed_url("https://www.youtube.com/watch?v=abc123")
        == "https://www.youtube.com/embed/abc123?autoplay=1"
    )
    assert (
        embed_url("https://youtube.com/live/xyz789?si=foo")
        == "https://www.youtube.com/embed/xyz789?autoplay=1"
    )
    assert embed_url("https://railstream.net/cam") == "https://railstream.net/cam"
    assert embed_url(None) == ""


def test_missing_config_falls_back_to_defaults(tmp_path):
    stations = load_stations(tmp_path / "absent.json")
    assert any(st.name == "Kingman" for st in stations)


def test_unreadable_config_falls_back_to_defaults(tmp_path):
    p = tmp_path / "stations.json"
    p.write_text("{not json", encoding="utf-8")
    stations = load_stations(p)
    assert any(st.name == "Gallup" for st in stations)


def test_legacy_youtube_link_key_is_accepted(tmp_path):
    p = tmp_path / "stations.json"
    p.write_text(
        json.dumps([{"name": "Gallup", "youtubeLink": "https://www.youtube.com/watch?v=g"}]),
        encoding="utf-8",
    )
    (st,) = load_stations(p)
    assert st.video_reference == "https://www.youtube.com/watch?v=g"
    assert st.has_railcam


def test_save_then_load(tmp_path):
    p = tmp_path / "cfg" / "stations.json"
    save_stations(
        p,
        [
            RailcamStation(name="Gallup", video_reference="https://example.org/g"),
            RailcamStation(name="Lamy", enabled=False),
        ],
    )
    d = load_directory(p)
    assert len(d) == 2
    assert d.railcam_for("Gallup").video_reference == "https://example.org/g"
    assert d.railcam_for("Lamy") is None
    assert not (tmp_path / "cfg" / "stations.json.tmp").exists()

"""
Calculation test fixtures.

Club data used throughout:

Season 1 (active): Kreisliga A (id 10) with teams 100, 101, 102 and
Kreisliga B (id 11) with teams 110, 111. Season 2 has no leagues.
Stored ``platz`` values in league 10 are deliberately out of order.
"""

import copy

import pytest

from src.calculations import CalculationJobs
from src.infra.content_store import InMemoryContentStore


def _entry(entry_id, liga, team, spiele, siege, unentschieden, niederlagen, tore_fuer, tore_gegen, punkte, platz):
    return {
        "id": entry_id,
        "liga": liga,
        "team": team,
        "spiele": spiele,
        "siege": siege,
        "unentschieden": unentschieden,
        "niederlagen": niederlagen,
        "tore_fuer": tore_fuer,
        "tore_gegen": tore_gegen,
        "punkte": punkte,
        "platz": platz,
    }


CLUB_DATA = {
    "saisons": [
        {
            "id": 1,
            "name": "2024/25",
            "aktiv": True,
            "start_datum": "2024-08-01",
            "end_datum": "2025-05-31",
        },
        {
            "id": 2,
            "name": "2023/24",
            "aktiv": False,
            "start_datum": "2023-08-01",
            "end_datum": "2024-05-31",
        },
    ],
    "ligas": [
        {"id": 10, "name": "Kreisliga A", "saison": 1},
        {"id": 11, "name": "Kreisliga B", "saison": 1},
    ],
    "teams": [
        {"id": 100, "name": "SV Nord", "saison": 1, "liga": 10},
        {"id": 101, "name": "FC Sued", "saison": 1, "liga": 10},
        {"id": 102, "name": "TSV Ost", "saison": 1, "liga": 10},
        {"id": 110, "name": "SC West", "saison": 1, "liga": 11},
        {"id": 111, "name": "VfB Mitte", "saison": 1, "liga": 11},
    ],
    "tabellen-eintraege": [
        _entry(1, 10, 100, 10, 7, 2, 1, 25, 8, 23, 2),
        _entry(2, 10, 101, 10, 5, 3, 2, 18, 12, 18, 1),
        _entry(3, 10, 102, 10, 1, 2, 7, 9, 27, 5, 3),
        _entry(4, 11, 110, 8, 6, 1, 1, 20, 6, 19, 1),
        _entry(5, 11, 111, 8, 2, 1, 5, 10, 15, 7, 2),
    ],
}


@pytest.fixture
def club_data() -> dict:
    return copy.deepcopy(CLUB_DATA)


@pytest.fixture
def store(club_data) -> InMemoryContentStore:
    store = InMemoryContentStore()
    store.seed(club_data)
    return store


@pytest.fixture
def calculations(service, store) -> CalculationJobs:
    """All adapters on a not yet started service, with batch pauses disabled."""
    jobs = CalculationJobs(service, store)
    for adapter in jobs.adapters:
        adapter.batch_delay = 0
    return jobs

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


def make_status_data(
    n_individuals=6,
    years=range(2011, 2019),
    slope=-3.0,
    noise_sd=2.0,
    seed=42,
):
    """
    Builds a synthetic USA-NPN status table.

    Each individual gets one season per year: a "no" and an "uncertain"
    record before its first flower date, a "yes" on the first flower date
    and two later "yes" records. The first flower date depends linearly on
    spring maximum temperature.
    """
    rng = np.random.default_rng(seed)
    years = list(years)
    rows = []
    for ind in range(n_individuals):
        individual_id = 1000 + ind
        for year in years:
            tmax_spring = rng.normal(15.0, 2.0)
            tmax_winter = rng.normal(5.0, 2.0)
            ffd = int(round(120 + slope * (tmax_spring - 15.0) + rng.normal(0, noise_sd)))
            season = [(ffd - 14, 0), (ffd - 7, -1), (ffd, 1), (ffd + 7, 1), (ffd + 21, 1)]
            for doy, status in season:
                date = pd.Timestamp(year=year, month=1, day=1) + pd.Timedelta(days=doy - 1)
                rows.append(
                    {
                        "individual_id": individual_id,
                        "species_id": 82,
                        "phenophase_description": "Open flowers",
                        "observation_date": date.strftime("%Y-%m-%d"),
                        "phenophase_status": status,
                        "day_of_year": doy,
                        "tmax_spring": round(tmax_spring, 2),
                        # The first year of every individual lacks winter climate.
                        "tmax_winter": -9999 if year == years[0] else round(tmax_winter, 2),
                        "site_name": "Test Site",
                        "network_name": "Test Network",
                    }
                )
    return pd.DataFrame(rows)


def make_first_events(individual_id, doys, first_year=2011, species_id=82,
                      phenophase="Open flowers"):
    """Builds reduced first-event rows, one per consecutive year."""
    return pd.DataFrame(
        {
            "individual_id": individual_id,
            "species_id": species_id,
            "phenophase_description": phenophase,
            "year": [first_year + i for i in range(len(doys))],
            "day_of_year": doys,
            "phenophase_status": 1,
        }
    )


@pytest.fixture
def status_data_factory():
    return make_status_data


@pytest.fixture
def first_events_factory():
    return make_first_events


@pytest.fixture
def status_data():
    return make_status_data()

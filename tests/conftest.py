from pathlib import Path

import numpy as np
import pandas as pd
import pytest


def make_college_df(n=80, seed=11):
    """Synthetic stand-in for the ISLR College table (raw column names)."""
    rng = np.random.default_rng(seed)
    apps = rng.integers(100, 20000, size=n).astype(float)
    accept = apps * rng.uniform(0.3, 0.9, size=n)
    enroll = accept * rng.uniform(0.2, 0.6, size=n)
    top10 = rng.uniform(1, 90, size=n)
    top25 = np.minimum(top10 + rng.uniform(5, 40, size=n), 100)
    outstate = 6000 + 80 * top10 + 0.1 * apps + rng.normal(scale=800, size=n)
    return pd.DataFrame(
        {
            "Private": rng.choice(["Yes", "No"], size=n),
            "Apps": apps,
            "Accept": accept,
            "Enroll": enroll,
            "Top10perc": top10,
            "Top25perc": top25,
            "Outstate": outstate,
        },
        index=[f"College {i}" for i in range(n)],
    )


@pytest.fixture
def college_df() -> pd.DataFrame:
    return make_college_df()


@pytest.fixture
def college_csv(tmp_path: Path) -> Path:
    path = tmp_path / "College.csv"
    make_college_df(n=60).to_csv(path)
    return path

import os
import subprocess
import sys
from pathlib import Path

import geopandas as gpd
import pandas as pd
from shapely.geometry import box

from exposure.report import choropleth, share_pct, township_table, ward_table, write_html_table

CATEGORIES = ["pop_below7", "pop_7", "pop_8", "pop_9"]


def make_layer() -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {
            "DT": ["Mandalay", "Mandalay", "Kyaukse"],
            "TS": ["Chanayethazan", "Amarapura", "Myittha"],
            "TS_MMR": ["a", "b", "c"],
            "WARD": ["w1", "w2", "w3"],
            "WARD_MMR": ["x", "y", "z"],
            "pop": [100.0, 0.0, 50.0],
            "pop_below7": [10.0, 0.0, 40.0],
            "pop_7": [10.0, 0.0, 5.0],
            "pop_8": [30.0, 0.0, 5.0],
            "pop_9": [50.0, 0.0, 0.0],
        },
        geometry=[box(0, 0, 1, 1), box(1, 0, 2, 1), box(2, 0, 3, 1)],
        crs="EPSG:4326",
    )


def test_share_pct_treats_zero_total_as_zero():
    df = pd.DataFrame({"pop": [3.0, 0.0], "pop_9": [1.0, 0.0]})
    assert share_pct(df, ["pop_9"]).tolist() == [33.33, 0.0]


def test_ward_table_ranks_by_extreme_share():
    table = ward_table(make_layer(), CATEGORIES)
    assert table["extreme_pct"].tolist() == [50.0, 0.0, 0.0]
    assert table["WARD"].tolist()[0] == "w1"
    assert "DT" not in table.columns


def test_township_table_combines_strongest_categories():
    table = township_table(make_layer(), CATEGORIES)
    assert table["vstrong_pct"].tolist() == [80.0, 10.0, 0.0]
    assert table["TS"].tolist() == ["Chanayethazan", "Myittha", "Amarapura"]


def test_html_table_and_map_are_written(tmp_path):
    table = township_table(make_layer(), CATEGORIES)

    html = write_html_table(table, tmp_path / "township.html", title="Townships of Mandalay")
    png = choropleth(table, "vstrong_pct", tmp_path / "township.png", title="Very strong shaking")

    text = html.read_text(encoding="utf-8")
    assert "Townships of Mandalay" in text
    assert "Chanayethazan" in text
    assert "geometry" not in text
    assert png.exists() and png.stat().st_size > 0


def test_html_title_is_escaped(tmp_path):
    path = write_html_table(make_layer(), tmp_path / "ward.html", title="Wards <b>&</b> more")

    text = path.read_text(encoding="utf-8")
    assert "<title>Wards &lt;b&gt;&amp;&lt;/b&gt; more</title>" in text
    assert "<h2>Wards &lt;b&gt;&amp;&lt;/b&gt; more</h2>" in text
    assert "<b>" not in text


def test_import_keeps_the_callers_matplotlib_backend():
    env = dict(os.environ, PYTHONPATH=str(Path(__file__).resolve().parents[1] / "src"))
    code = (
        "import matplotlib; matplotlib.use('pdf'); import exposure.report; "
        "assert matplotlib.get_backend() == 'pdf', matplotlib.get_backend()"
    )
    subprocess.run([sys.executable, "-c", code], check=True, env=env)

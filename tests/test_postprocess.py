from __future__ import annotations

import allure
import pytest

from artifact_forge.postprocess import asset_prefix, correct_asset_paths

pytestmark = [
    allure.epic("Artifact Verification"),
    allure.feature("Asset Paths"),
]


def test_rewrites_attributes_and_css_urls_for_depth() -> None:
    html = (
        '<img src="assets/logo.svg">'
        '<link href="../../../assets/app.css">'
        "<div style=\"background: url('../assets/bg.png')\"></div>"
        '<style>.hero { background: url("./assets/hero.jpg"); }</style>'
    )

    fixed = correct_asset_paths(html, 3)

    assert '<img src="../../../assets/logo.svg">' in fixed
    assert '<link href="../../../assets/app.css">' in fixed
    assert "url('../../../assets/bg.png')" in fixed
    assert 'url("../../../assets/hero.jpg")' in fixed


def test_depth_zero_points_at_local_assets() -> None:
    assert correct_asset_paths('<img src="../../assets/a.png">', 0) == '<img src="assets/a.png">'


def test_other_paths_are_untouched() -> None:
    html = '<a href="https://example.com/assets/x">x</a><img src="images/a.png">'

    assert correct_asset_paths(html, 2) == html


def test_negative_depth_is_rejected() -> None:
    with pytest.raises(ValueError):
        asset_prefix(-1)

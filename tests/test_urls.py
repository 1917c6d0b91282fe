from secure_assets.services.urls import make_cdn_url, resolve_public_url


def test_make_cdn_url_collapses_duplicate_slashes() -> None:
    url = make_cdn_url("https://cdn.jsdelivr.net/gh/", "acme", "assets", "main", "/img//logo.png")
    assert url == "https://cdn.jsdelivr.net/gh/acme/assets@main/img/logo.png"


def test_github_asset_uses_its_own_repo_and_branch(settings, asset_factory) -> None:
    asset = asset_factory(disk="github", path="img/logo.png", repo="other/media", branch="release")
    assert resolve_public_url(asset, settings) == "https://cdn.jsdelivr.net/gh/other/media@release/img/logo.png"


def test_github_asset_falls_back_to_configured_repo(settings, asset_factory) -> None:
    asset = asset_factory(disk="github", path="img/logo.png", repo=None, branch=None)
    assert resolve_public_url(asset, settings) == "https://cdn.jsdelivr.net/gh/acme/assets@main/img/logo.png"


def test_other_disks_pass_path_through(settings, asset_factory) -> None:
    remote = asset_factory(disk="remote", path="https://example.com/x.png")
    local = asset_factory(disk="local", path="/srv/files/x.png")
    assert resolve_public_url(remote, settings) == "https://example.com/x.png"
    assert resolve_public_url(local, settings) == "/srv/files/x.png"

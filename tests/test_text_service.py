from secure_assets.services.text import (
    file_extension,
    guess_filename,
    has_extension,
    random_slug,
    sha256_hex,
    slugify,
)


def test_slugify_normalizes_text() -> None:
    assert slugify("  Hello World_Again ") == "hello-world-again"
    assert slugify("Crème Brûlée!") == "creme-brulee"
    assert slugify("--a---b--") == "a-b"
    assert slugify("!!!") == ""
    assert slugify(None) == ""


def test_random_slug_is_short_and_url_safe() -> None:
    value = random_slug()
    assert len(value) == 8
    assert slugify(value) == value


def test_sha256_hex_matches_known_digest() -> None:
    assert sha256_hex(b"abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    assert sha256_hex("abc") == sha256_hex(b"abc")


def test_guess_filename_from_url_and_path() -> None:
    assert guess_filename("https://cdn.example.com/a/b/logo.png?v=2") == "logo.png"
    assert guess_filename("images/icons/app.svg") == "app.svg"
    assert guess_filename("https://example.com/") is None
    assert guess_filename("") is None


def test_extension_helpers() -> None:
    assert file_extension("Photo.JPG") == "jpg"
    assert file_extension("README") == ""
    assert has_extension("docs/guide.pdf") is True
    assert has_extension("docs/guide") is False

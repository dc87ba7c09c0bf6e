import os

import pytest

from folio_media.domain.errors import InvalidPath
from folio_media.security.paths import join_segments, resolve_under


def test_resolves_nested_path_inside_base(tmp_path):
    resolved = resolve_under(tmp_path, os.path.join("trip", "photo.jpg"))
    assert resolved == tmp_path / "trip" / "photo.jpg"


def test_base_itself_is_allowed(tmp_path):
    assert resolve_under(tmp_path, "") == tmp_path


def test_inner_dotdot_that_stays_inside_is_allowed(tmp_path):
    resolved = resolve_under(tmp_path, os.path.join("trip", "..", "photo.jpg"))
    assert resolved == tmp_path / "photo.jpg"


@pytest.mark.parametrize(
    "relative",
    [
        os.path.join("..", "secret.jpg"),
        os.path.join("trip", "..", "..", "secret.jpg"),
        os.sep + os.path.join("etc", "passwd.jpg"),
    ],
)
def test_escaping_paths_are_rejected(tmp_path, relative):
    with pytest.raises(InvalidPath):
        resolve_under(tmp_path / "images", relative)


def test_sibling_with_common_prefix_is_rejected(tmp_path):
    # "/tmp/images-evil" starts with "/tmp/images" but is not inside it.
    with pytest.raises(InvalidPath):
        resolve_under(tmp_path / "images", os.path.join("..", "images-evil", "a.jpg"))


def test_resolution_does_not_touch_filesystem(tmp_path):
    missing_base = tmp_path / "does-not-exist"
    assert resolve_under(missing_base, "a.jpg") == missing_base / "a.jpg"


def test_join_segments_decodes_each_segment():
    assert join_segments(["my%20trip", "photo%20(1).jpg"]) == os.path.join("my trip", "photo (1).jpg")


def test_join_segments_decoded_dotdot_is_caught_by_resolver(tmp_path):
    relative = join_segments(["%2E%2E", "secret.jpg"])
    with pytest.raises(InvalidPath):
        resolve_under(tmp_path / "images", relative)

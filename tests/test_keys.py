import re

from setup_tool.keys import (
    folder_context,
    generate_object_key,
    original_file_name,
    sanitize_file_name,
    slugify,
)

KEY_RE = re.compile(r"^(?P<folder>.+)/(?P<ts>\d{13,})-(?P<rand>[0-9a-z]{6})-(?P<name>[A-Za-z0-9._-]+)$")


def test_sanitize_replaces_unsafe_characters():
    assert sanitize_file_name("My Clip (v2)!.mov") == "My_Clip__v2__.mov"
    assert sanitize_file_name("ok-name.v1.wav") == "ok-name.v1.wav"


def test_slugify_lowercases_and_hyphenates():
    assert slugify("Spring  Campaign 2024") == "spring-campaign-2024"


def test_key_routes_by_priority():
    assert generate_object_key("a.mov", folder="exports/final").startswith("exports/final/")
    assert generate_object_key("a.mov", folder="archive", project_name="X").startswith("archive/")
    assert generate_object_key("a.mov", project_name="Big Shoot", client_name="Acme").startswith(
        "productions/big-shoot/")
    assert generate_object_key("a.mov", client_name="Acme Corp").startswith("clients/acme-corp/")


def test_key_routes_by_category_when_unattributed():
    assert generate_object_key("clip.mp4").startswith("raw-footage/")
    assert generate_object_key("cover.png").startswith("graphics/")
    assert generate_object_key("theme.wav").startswith("music/")
    assert generate_object_key("brief.pdf").startswith("documents/")
    assert generate_object_key("edit.prproj").startswith("projects/")
    assert generate_object_key("archive.zip").startswith("misc/")


def test_key_format():
    match = KEY_RE.match(generate_object_key("Final Cut.mov"))
    assert match is not None
    assert match.group("name") == "Final_Cut.mov"


def test_keys_are_unique_and_ordered_for_identical_names():
    keys = [generate_object_key("same.wav") for _ in range(500)]
    assert len(set(keys)) == len(keys)
    timestamps = [int(KEY_RE.match(k).group("ts")) for k in keys]
    assert timestamps == sorted(timestamps)
    assert len(set(timestamps)) == len(timestamps)


def test_original_file_name_strips_upload_prefix():
    key = generate_object_key("Theme.wav")
    assert original_file_name(key) == "Theme.wav"
    assert original_file_name("legacy/clip.mov") == "clip.mov"


def test_folder_context():
    assert folder_context("productions/big-shoot/1-a.mov") == ("big-shoot", None)
    assert folder_context("clients/acme/1-a.mov") == (None, "acme")
    assert folder_context("music/a.wav") == (None, None)
    assert folder_context("productions/a.mov") == (None, None)


def test_empty_folder_override_falls_back_to_routing():
    assert generate_object_key("cover.png", folder="/").startswith("graphics/")
    assert generate_object_key("a.mov", folder="//", project_name="Big Shoot").startswith("productions/big-shoot/")
    assert KEY_RE.match(generate_object_key("clip.mp4", folder="/"))

import pytest

from docsync.config.resolver import ConfigResolver
from docsync.errors import NoMatchingConfig

from conftest import make_config


def test_wildcard_captures_parent_id():
    config = make_config(id="b", collectionPaths=["a/{p}/b"])
    resolved = ConfigResolver([config]).resolve("a/x/b")

    assert resolved.config is config
    assert resolved.parent_id == "x"


def test_document_path_matches_its_collection(resolver, members_config):
    resolved = resolver.resolve("organizations/o1/members/m1")

    assert resolved.config is members_config
    assert resolved.parent_id == "o1"


def test_plain_collection_has_no_parent(resolver, users_config):
    resolved = resolver.resolve("users/u1")

    assert resolved.config is users_config
    assert resolved.parent_id is None


def test_leading_and_trailing_slashes_are_ignored(resolver, users_config):
    assert resolver.resolve("/users/u1/").config is users_config


@pytest.mark.parametrize("path", [
    "orders/o1",
    "organizations/o1/teams/t1",
    "users/u1/sessions/s1",
    "",
])
def test_unmatched_paths(resolver, path):
    with pytest.raises(NoMatchingConfig):
        resolver.resolve(path)
    assert resolver.find(path) is None


def test_first_config_wins_on_overlap():
    specific = make_config(id="specific", collectionPaths=["organizations/acme/members"])
    generic = make_config(id="generic", collectionPaths=["organizations/{orgId}/members"])

    assert ConfigResolver([generic, specific]).find("organizations/acme/members/m1") is generic
    assert ConfigResolver([specific, generic]).find("organizations/acme/members/m1") is specific


def test_parent_id_from_first_pattern_that_reaches():
    config = make_config(collectionPaths=["flat", "orgs/{orgId}/users"])

    assert ConfigResolver.extract_parent_id(config, "orgs/o9/users/u1") == "o9"

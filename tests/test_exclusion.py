from hushbrew.exclusion import filter_excluded, restrict_to_leaves


def test_filter_removes_every_excluded_item_and_keeps_the_rest():
    candidates = {"nodejs", "curl", "git", "wget"}
    excluded = {"nodejs", "wget", "not-installed"}

    result = filter_excluded(candidates, excluded)

    assert result == {"curl", "git"}
    assert all(item not in result for item in excluded)
    assert all(item in result for item in candidates - excluded)


def test_filter_is_idempotent():
    candidates = ["b", "a", "c", "a"]
    excluded = ["c"]

    once = filter_excluded(candidates, excluded)
    twice = filter_excluded(once, excluded)

    assert once == twice == {"a", "b"}


def test_filter_with_empty_inputs():
    assert filter_excluded([], {"x"}) == frozenset()
    assert filter_excluded({"x"}, []) == {"x"}


def test_leaves_restriction_accepts_tap_qualified_names():
    candidates = {"ripgrep", "openssl@3", "terraform"}
    leaves = ["ripgrep", "hashicorp/tap/terraform"]

    assert restrict_to_leaves(candidates, leaves) == {"ripgrep", "terraform"}

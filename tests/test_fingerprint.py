import string

import pytest

from mpo import fingerprint as fp
from mpo.errors import FingerprintError
from mpo.models import ProxySpec


def _spec(**overrides):
    raw = {
        "rules": {
            "type": "sharded",
            "children": [
                {"type": "sharded", "service": {"name": "a", "namespace": "default", "port": 11211}},
                {"type": "sharded", "service": {"name": "b", "namespace": "default", "port": 11211}},
            ],
        },
        "mcrouter": {"image": "jphalip/mcrouter:0.36.0", "port": 11211},
    }
    raw.update(overrides)
    return ProxySpec.model_validate(raw)


def test_digest_is_fixed_width_hex():
    digest = fp.fingerprint(_spec())
    assert len(digest) == 16
    assert set(digest) <= set(string.hexdigits.lower())


def test_identical_content_gives_identical_digest():
    a = _spec()
    b = ProxySpec.model_validate(a.model_dump(by_alias=True))
    assert fp.fingerprint(a) == fp.fingerprint(a)
    assert fp.fingerprint(a) == fp.fingerprint(b)


def test_field_change_changes_digest():
    base = fp.fingerprint(_spec())
    assert fp.fingerprint(_spec(mcrouter={"image": "other:1", "port": 11211})) != base
    assert fp.fingerprint(_spec(mcrouter={"image": "jphalip/mcrouter:0.36.0", "port": 11212})) != base


def test_child_append_remove_and_reorder_change_digest():
    base_spec = _spec()
    base = fp.fingerprint(base_spec)
    a, b = base_spec.rules.children

    appended = base_spec.model_copy(deep=True)
    appended.rules.children.append(b.model_copy(deep=True))
    removed = base_spec.model_copy(deep=True)
    removed.rules.children.pop()
    reordered = base_spec.model_copy(deep=True)
    reordered.rules.children = [b.model_copy(deep=True), a.model_copy(deep=True)]

    digests = {fp.fingerprint(s) for s in (appended, removed, reordered)}
    assert base not in digests
    assert len(digests) == 3


def test_numeric_and_named_port_differ():
    numeric = ProxySpec.model_validate({"rules": {"service": {"name": "a", "port": 80}}})
    named = ProxySpec.model_validate({"rules": {"service": {"name": "a", "port": "80"}}})
    assert fp.fingerprint(numeric) != fp.fingerprint(named)


def test_mapping_key_order_does_not_matter():
    a = _spec(mcrouter={"resources": {"limits": {"cpu": "1", "memory": "1Gi"}}})
    b = _spec(mcrouter={"resources": {"limits": {"memory": "1Gi", "cpu": "1"}}})
    assert fp.fingerprint(a) == fp.fingerprint(b)


def test_unencodable_values_raise():
    with pytest.raises(FingerprintError):
        fp.fingerprint(_spec(mcrouter={"resources": {"limits": {"cpu": float("nan")}}}))
    with pytest.raises(FingerprintError):
        fp._encode(object(), [])

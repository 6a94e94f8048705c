import json

import pytest

from extension_lens.conflicts import AnalysisContext, Conflict, RegistrationMismatchRule
from extension_lens.engine import DiagnosticsEngine
from extension_lens.manifest import build_manifest
from extension_lens.remediation import (
    RemediationEngine,
    RemediationPolicy,
    detect_indent,
    group_by_component,
    patch_activation_events,
)

from fakes import FakeClipboard, FakeCommandTable, FakeFileEditor, FakeRegistry, make_descriptor, make_package


def missing_activation_conflicts(*descriptors):
    manifests = tuple(build_manifest(descriptor) for descriptor in descriptors)
    conflicts = RegistrationMismatchRule().evaluate(AnalysisContext(manifests=manifests))
    return [conflict for conflict in conflicts if conflict.code == "missing-activation"]


def make_engine(descriptors, editor, clipboard=None, auto_apply=True):
    return DiagnosticsEngine(
        registry=FakeRegistry(descriptors),
        command_table=FakeCommandTable(),
        file_editor=editor,
        clipboard=clipboard,
        policy=RemediationPolicy(auto_apply_batch=auto_apply),
    )


def test_patch_adds_sorted_tokens_and_keeps_two_space_indent():
    text = json.dumps({"name": "foo", "activationEvents": ["onView:tree"]}, indent=2) + "\n"

    patched = patch_activation_events(text, ["foo.zeta", "foo.alpha"])

    assert patched is not None
    assert patched.endswith("}\n")
    assert '\n  "name": "foo"' in patched
    assert json.loads(patched)["activationEvents"] == ["onCommand:foo.alpha", "onCommand:foo.zeta", "onView:tree"]


def test_patch_creates_activation_events_and_keeps_tabs():
    text = '{\n\t"name": "foo"\n}'
    patched = patch_activation_events(text, ["foo.run"])
    assert '\n\t"activationEvents"' in patched
    assert not patched.endswith("\n")
    assert json.loads(patched)["activationEvents"] == ["onCommand:foo.run"]


def test_patch_returns_none_when_nothing_to_add():
    text = json.dumps({"activationEvents": ["onCommand:foo.run"]})
    assert patch_activation_events(text, ["foo.run"]) is None


def test_patch_rejects_malformed_manifest():
    with pytest.raises(ValueError):
        patch_activation_events("{not json", ["foo.run"])
    with pytest.raises(ValueError):
        patch_activation_events('{"activationEvents": "onCommand:x"}', ["foo.run"])


def test_detect_indent_defaults_to_four_spaces():
    assert detect_indent('{"a": 1}') == 4
    assert detect_indent('{\n   "a": 1\n}') == 3


@pytest.mark.asyncio
async def test_batch_remediation_writes_one_transaction_per_run():
    foo = make_descriptor(make_package("foo", commands=["foo.a", "foo.b"], activation_events=[]))
    bar = make_descriptor(make_package("bar", commands=["bar.a"]))
    editor = FakeFileEditor()
    editor.add_package(foo, indent=2)
    editor.add_package(bar)
    engine = make_engine([foo, bar], editor)

    result = await engine.run_batch_remediation()

    assert result.success and result.applied
    assert result.updated_components == ["acme.foo", "acme.bar"]
    assert len(editor.apply_calls) == 1
    assert len(editor.apply_calls[0]) == 2
    patched_foo = editor.docs[foo.location]
    assert json.loads(patched_foo)["activationEvents"] == ["onCommand:foo.a", "onCommand:foo.b"]
    assert patched_foo.startswith('{\n  "name"')


@pytest.mark.asyncio
async def test_batch_remediation_is_idempotent():
    foo = make_descriptor(make_package("foo", commands=["foo.a"]))
    editor = FakeFileEditor()
    editor.add_package(foo)
    engine = make_engine([foo], editor)

    await engine.run_batch_remediation()
    second = await engine.run_batch_remediation()

    assert second.success
    assert second.edits == []
    assert not second.applied
    assert len(editor.apply_calls) == 1


@pytest.mark.asyncio
async def test_malformed_manifest_does_not_abort_other_components():
    broken = make_descriptor(make_package("broken", commands=["broken.a"]))
    good = make_descriptor(make_package("good", commands=["good.a"]))
    editor = FakeFileEditor({broken.location: "{ this is not json"})
    editor.add_package(good)
    remediation = RemediationEngine(FakeRegistry([broken, good]), editor)

    result = await remediation.remediate_batch(missing_activation_conflicts(broken, good))

    assert result.success
    assert list(result.failures) == ["acme.broken"]
    assert result.updated_components == ["acme.good"]
    assert "acme.broken" in result.message
    assert editor.docs[broken.location] == "{ this is not json"


@pytest.mark.asyncio
async def test_batch_fails_when_every_manifest_is_malformed():
    first = make_descriptor(make_package("first", commands=["first.a"]))
    second = make_descriptor(make_package("second", commands=["second.a"]))
    editor = FakeFileEditor({first.location: "{ nope", second.location: "[1, 2"})
    remediation = RemediationEngine(FakeRegistry([first, second]), editor)

    result = await remediation.remediate_batch(missing_activation_conflicts(first, second))

    assert not result.success
    assert result.edits == []
    assert sorted(result.failures) == ["acme.first", "acme.second"]
    assert "failed for: acme.first, acme.second" in result.message
    assert editor.apply_calls == []


def test_group_by_component_skips_unowned_conflicts():
    owned = Conflict("registration", "foo.a", ("Foo",), "warning", "missing", component_id="acme.foo")
    unowned = Conflict("registration", "bar.a", ("Bar",), "warning", "missing")

    groups = group_by_component([owned, unowned, owned])

    assert dict(groups) == {"acme.foo": ["foo.a"]}


@pytest.mark.asyncio
async def test_vanished_component_is_skipped_silently():
    ghost = make_descriptor(make_package("ghost", commands=["ghost.a"]))
    editor = FakeFileEditor()
    remediation = RemediationEngine(FakeRegistry([]), editor)

    result = await remediation.remediate_batch(missing_activation_conflicts(ghost))

    assert result.success
    assert result.failures == {}
    assert editor.apply_calls == []


@pytest.mark.asyncio
async def test_batch_without_auto_apply_only_prepares_edits():
    foo = make_descriptor(make_package("foo", commands=["foo.a"]))
    editor = FakeFileEditor()
    editor.add_package(foo)
    original = editor.docs[foo.location]
    engine = make_engine([foo], editor, auto_apply=False)

    result = await engine.run_batch_remediation()

    assert result.success and not result.applied
    assert len(result.edits) == 1
    assert "onCommand:foo.a" in result.edits[0].new_text
    assert editor.apply_calls == []
    assert editor.docs[foo.location] == original


@pytest.mark.asyncio
async def test_rejected_apply_reports_failure():
    foo = make_descriptor(make_package("foo", commands=["foo.a"]))
    editor = FakeFileEditor(accept=False)
    editor.add_package(foo)

    result = await make_engine([foo], editor).run_batch_remediation()

    assert not result.success
    assert not result.applied


@pytest.mark.asyncio
async def test_single_remediation_copies_token_and_never_writes():
    foo = make_descriptor(make_package("foo", commands=["foo.bar"]))
    editor = FakeFileEditor()
    editor.add_package(foo)
    clipboard = FakeClipboard()
    engine = make_engine([foo], editor, clipboard)
    conflict = missing_activation_conflicts(foo)[0]

    result = await engine.run_single_remediation(conflict)

    assert result.success
    assert result.text == "onCommand:foo.bar"
    assert clipboard.texts == ["onCommand:foo.bar"]
    assert editor.apply_calls == []


@pytest.mark.asyncio
async def test_single_remediation_reports_clipboard_failure():
    foo = make_descriptor(make_package("foo", commands=["foo.bar"]))
    remediation = RemediationEngine(FakeRegistry([foo]), FakeFileEditor(), FakeClipboard(fail=True))

    result = await remediation.remediate_single(missing_activation_conflicts(foo)[0])

    assert not result.success
    assert "clipboard unavailable" in result.message


@pytest.mark.asyncio
async def test_single_remediation_rejects_other_conflicts():
    foo = make_descriptor(make_package("foo", commands=["foo.bar"], activation_events=["*"]))
    conflicts = RegistrationMismatchRule().evaluate(AnalysisContext(manifests=(build_manifest(foo),)))
    clipboard = FakeClipboard()

    result = await RemediationEngine(FakeRegistry([foo]), clipboard=clipboard).remediate_single(conflicts[0])

    assert not result.success
    assert clipboard.texts == []

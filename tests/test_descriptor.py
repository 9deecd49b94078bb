"""Tests for the extension descriptor model."""

__namespace__ = "tests.descriptor"

import pickle
from pathlib import Path

import pytest
from pydantic import ValidationError

from extloader.descriptor import (
    DescriptorSnapshot,
    ExtensionDescriptor,
    read_declared_defaults,
)
from extloader.exceptions import InvalidCandidateError
from extloader.extension import Extension, extension_types


class Journal(Extension):
    version = "1.0"
    description = "Keeps a journal"


class Calendar(Extension):
    extension_name = "Team Calendar"
    extension_version = "2.0"
    extension_description = "Shared calendar"
    name = "ignored"
    version = "ignored"
    description = "ignored"


class Counter(Extension):
    version = 3


class Flagged(Extension):
    version = True
    description = 12


class Computed(Extension):
    @property
    def version(self) -> str:
        return "9.9"


class EmptyNamed(Extension):
    extension_name = ""
    name = "Fallback Name"


class Template(Extension):
    def template(self):
        raise NotImplementedError


class TestFromType:
    """Test building descriptors from extension types."""

    def test_defaults_from_secondary_fields(self):
        descriptor = ExtensionDescriptor.from_type(Journal)

        assert descriptor.qualified_type_name == "tests.descriptor.Journal"
        assert descriptor.name == "Journal"
        assert descriptor.version == "1.0"
        assert descriptor.description == "Keeps a journal"
        assert descriptor.strict is False

    def test_primary_fields_take_precedence(self):
        descriptor = ExtensionDescriptor.from_type(Calendar, strict=True)

        assert descriptor.name == "Team Calendar"
        assert descriptor.version == "2.0"
        assert descriptor.description == "Shared calendar"
        assert descriptor.strict is True

    def test_source_location_is_absolute(self):
        descriptor = ExtensionDescriptor.from_type(Journal)

        assert descriptor.source_location == str(Path(__file__).resolve())

    def test_numeric_version(self):
        assert ExtensionDescriptor.from_type(Counter).version == "3"

    def test_non_text_values_are_ignored(self):
        """Test that booleans and non-string descriptions are not used."""
        descriptor = ExtensionDescriptor.from_type(Flagged)

        assert descriptor.version == ""
        assert descriptor.description == ""

    def test_computed_values_are_ignored(self):
        """Test that only declared defaults count, not properties."""
        assert ExtensionDescriptor.from_type(Computed).version == ""

    def test_empty_primary_falls_back(self):
        assert ExtensionDescriptor.from_type(EmptyNamed).name == "Fallback Name"

    def test_short_name_default(self):
        descriptor = ExtensionDescriptor.from_type(Template)

        assert descriptor.name == "Template"
        assert descriptor.version == ""
        assert descriptor.description == ""

    def test_invalid_type(self):
        with pytest.raises(InvalidCandidateError):
            ExtensionDescriptor.from_type(object)

    def test_read_declared_defaults(self):
        assert read_declared_defaults(Journal) == {
            "name": "Journal",
            "version": "1.0",
            "description": "Keeps a journal",
        }


class TestDescriptorModel:
    """Test descriptor validation and accessors."""

    def test_accessors(self):
        descriptor = ExtensionDescriptor.from_type(Journal)

        assert descriptor.is_valid is True
        assert descriptor.short_name == "Journal"
        assert descriptor.namespace == "tests.descriptor"

    def test_empty_type_name_is_invalid(self):
        with pytest.raises(ValidationError):
            ExtensionDescriptor(qualified_type_name="", name="Journal")

    def test_immutable(self):
        descriptor = ExtensionDescriptor.from_type(Journal)

        with pytest.raises(ValidationError):
            descriptor.version = "2.0"


class TestSnapshots:
    """Test persisting and restoring descriptors."""

    def test_snapshot_keeps_identity_only(self):
        snapshot = ExtensionDescriptor.from_type(Journal, strict=True).to_snapshot()

        assert snapshot == DescriptorSnapshot(
            qualified_type_name="tests.descriptor.Journal", strict=True
        )

    def test_restore_round_trip(self):
        descriptor = ExtensionDescriptor.from_type(Calendar, strict=True)

        restored = ExtensionDescriptor.from_snapshot(descriptor.to_snapshot())

        assert restored == descriptor

    def test_restore_reads_current_code(self, monkeypatch):
        """Test that restoring reflects the live type, not cached metadata."""
        snapshot = ExtensionDescriptor.from_type(Journal).to_snapshot()
        monkeypatch.setattr(Journal, "version", "1.1")

        restored = ExtensionDescriptor.from_snapshot(snapshot)

        assert restored.version == "1.1"

    def test_restore_missing_type(self):
        snapshot = DescriptorSnapshot(qualified_type_name="tests.descriptor.Gone")

        with pytest.raises(InvalidCandidateError, match="no longer available"):
            ExtensionDescriptor.from_snapshot(snapshot)

    def test_restore_type_removed_from_registry(self):
        snapshot = ExtensionDescriptor.from_type(Journal).to_snapshot()
        extension_types.discard("tests.descriptor.Journal")

        with pytest.raises(InvalidCandidateError):
            ExtensionDescriptor.from_snapshot(snapshot)

    def test_pickle_round_trip(self):
        descriptor = ExtensionDescriptor.from_type(Journal)

        restored = pickle.loads(pickle.dumps(descriptor))

        assert restored == descriptor

    def test_snapshot_json_round_trip(self):
        snapshot = ExtensionDescriptor.from_type(Journal).to_snapshot()

        restored = DescriptorSnapshot.model_validate_json(snapshot.model_dump_json())

        assert ExtensionDescriptor.from_snapshot(restored).name == "Journal"

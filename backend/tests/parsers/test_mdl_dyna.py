"""Tests for the mdlDyna.inc model registry parser and its in-place updates."""

import pytest

from parsers.diagnostics import DiagnosticSeverity
from parsers.mdl_dyna import ModelRegistryParser

MDL_DYNA = (
    "// mdlDyna.inc\r\n"
    "// header block, { inside a comment does not count\r\n"
    "\"Item_Header\" II_WEA_IN_HEADER MODELTYPE_MESH \"ignored\"\r\n"
    "Item\r\n"
    "{\r\n"
    "    \"Item_WeaAxeRodney\"\tII_WEA_AXE_RODNEY\tMODELTYPE_MESH\t\"\"\t0\t1.0\r\n"
    "    // \"Item_Commented\" II_WEA_COMMENTED MODELTYPE_MESH \"\"\r\n"
    "\r\n"
    "    \"Item_ArmCloth\"   II_ARM_M_CLO_BODY   MODELTYPE_MESH   \"Part_mCloth\"  0\r\n"
    "    \"Item_ArmNoMesh\"  II_ARM_M_NO_MESH    MODELTYPE_BILLBOARD\r\n"
    "    \"Item_WeaAxeDup\"  II_WEA_AXE_RODNEY   MODELTYPE_MESH   \"\"\r\n"
    "}\r\n"
)


@pytest.fixture
def parser():
    return ModelRegistryParser()


@pytest.fixture
def registry(parser):
    return parser.parse(MDL_DYNA)


def changed_lines(before: str, after: str):
    old_lines = before.splitlines(keepends=True)
    new_lines = after.splitlines(keepends=True)
    assert len(old_lines) == len(new_lines)
    return [i for i, (a, b) in enumerate(zip(old_lines, new_lines)) if a != b]


class TestModelRegistryParse:

    def test_header_block_is_ignored(self, registry):
        assert 'II_WEA_IN_HEADER' not in registry

    def test_file_name_precedes_key(self, registry):
        assert registry.file_name('II_WEA_AXE_RODNEY') == 'Item_WeaAxeRodney'

    def test_first_line_wins_for_duplicate_keys(self, registry):
        assert registry.get('II_WEA_AXE_RODNEY').line_index == 5

    def test_comment_lines_are_skipped(self, registry):
        assert 'II_WEA_COMMENTED' not in registry

    def test_armor_keys_carry_mesh_name(self, registry):
        assert registry.file_name('II_ARM_M_CLO_BODY') == 'Item_ArmCloth'
        assert registry.mesh_name('II_ARM_M_CLO_BODY') == 'Part_mCloth'

    def test_non_armor_keys_have_no_mesh_name(self, registry):
        assert registry.get('II_WEA_AXE_RODNEY').mesh_name is None

    def test_armor_without_marker_has_no_mesh(self, registry):
        entry = registry.get('II_ARM_M_NO_MESH')
        assert entry.file_name == 'Item_ArmNoMesh'
        assert entry.mesh_name is None

    def test_lookup_strips_quotes_and_misses(self, registry):
        assert registry.file_name('"II_ARM_M_CLO_BODY"') == 'Item_ArmCloth'
        assert registry.file_name('II_UNKNOWN') == ''
        assert registry.mesh_name('II_UNKNOWN') == ''

    def test_legacy_set_item_name_form(self, parser):
        registry = parser.parse('{\nSetItemName( II_WEA_SWO_WOODEN, "Item_WeaSwoWooden.o3d" );\n')
        assert registry.file_name('II_WEA_SWO_WOODEN') == 'Item_WeaSwoWooden.o3d'

    def test_empty_input_warns(self, parser):
        registry = parser.parse('')
        assert len(registry) == 0
        assert registry.serialize() == ''
        assert registry.diagnostics[0].severity is DiagnosticSeverity.WARNING

    def test_unedited_serialize_is_identical(self, registry):
        assert registry.serialize() == MDL_DYNA


class TestModelRegistryUpdate:

    def test_file_name_update_changes_one_line(self, registry):
        assert registry.update('II_WEA_AXE_RODNEY', 'file_name', 'Item_WeaAxeNew')

        after = registry.serialize()
        assert changed_lines(MDL_DYNA, after) == [5]
        assert ("    \"Item_WeaAxeNew\"\tII_WEA_AXE_RODNEY\tMODELTYPE_MESH\t\"\"\t0\t1.0\r\n"
                in after)
        assert registry.file_name('II_WEA_AXE_RODNEY') == 'Item_WeaAxeNew'

    def test_mesh_name_update_for_armor(self, registry):
        assert registry.update('II_ARM_M_CLO_BODY', 'mesh_name', 'Part_mClothNew')

        after = registry.serialize()
        assert changed_lines(MDL_DYNA, after) == [8]
        assert ('"Item_ArmCloth"   II_ARM_M_CLO_BODY   MODELTYPE_MESH   "Part_mClothNew"  0\r\n'
                in after)
        assert registry.mesh_name('II_ARM_M_CLO_BODY') == 'Part_mClothNew'

    def test_missing_key_changes_nothing(self, registry):
        assert not registry.update('II_NOT_THERE', 'file_name', 'x')
        assert registry.serialize() == MDL_DYNA

    def test_mesh_update_on_weapon_is_rejected(self, registry):
        assert not registry.update('II_WEA_AXE_RODNEY', 'mesh_name', 'x')
        assert registry.serialize() == MDL_DYNA

    def test_mesh_update_without_marker_is_rejected(self, registry):
        assert not registry.update('II_ARM_M_NO_MESH', 'mesh_name', 'x')
        assert registry.serialize() == MDL_DYNA

    @pytest.mark.parametrize("value", ['with"quote', 'two\nlines'])
    def test_values_that_break_the_line_are_rejected(self, registry, value):
        assert not registry.update('II_WEA_AXE_RODNEY', 'file_name', value)
        assert registry.serialize() == MDL_DYNA

    def test_update_uses_the_parsed_line(self, parser):
        content = '{\n// c\nII_WEA_X note line without quote\n"Item_X" II_WEA_X MODELTYPE_MESH ""\n}\n'
        registry = parser.parse(content)
        assert registry.file_name('II_WEA_X') == 'Item_X'

        assert registry.update('II_WEA_X', 'file_name', 'Item_Y')
        assert changed_lines(content, registry.serialize()) == [3]
        assert registry.file_name('II_WEA_X') == 'Item_Y'

    def test_unknown_field_is_rejected(self, registry):
        assert not registry.update('II_WEA_AXE_RODNEY', 'texture', 'x')


class TestKnownOverrides:

    def test_overrides_fill_missing_keys_only(self, parser):
        overrides = {
            'II_WEA_AXE_RODNEY': {'file_name': 'Override'},
            'II_ARM_F_MISSING': {'file_name': 'Item_ArmMissing', 'mesh_name': 'Part_fMissing'},
        }
        registry = parser.parse(MDL_DYNA, overrides=overrides)

        assert registry.file_name('II_WEA_AXE_RODNEY') == 'Item_WeaAxeRodney'
        missing = registry.get('II_ARM_F_MISSING')
        assert missing.overridden
        assert missing.mesh_name == 'Part_fMissing'

    def test_overridden_entries_cannot_be_updated(self, parser):
        registry = parser.parse(MDL_DYNA, overrides={'II_WEA_EXTRA': {'file_name': 'Item_Extra'}})
        assert not registry.update('II_WEA_EXTRA', 'file_name', 'Item_Other')
        assert registry.serialize() == MDL_DYNA

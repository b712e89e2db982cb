import pytest

from diamond_cutter.core.exceptions import EmptyCutEntryError, InvalidModuleDescriptorError
from diamond_cutter.domain.models.cut import ZERO_ADDRESS, CutAction, CutEntry
from diamond_cutter.domain.models.module import ModuleDescriptor, Selector
from diamond_cutter.services.collision_resolver import SelectorAssignment, resolve_collisions
from diamond_cutter.services.cut_builder import build_cut

A_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
B_ADDRESS = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"


def test_fully_absorbed_module_contributes_no_entry():
    module_a = ModuleDescriptor(name="A", address=A_ADDRESS)
    module_b = ModuleDescriptor(name="B", address=B_ADDRESS)
    s1, s2 = Selector.from_hex("0x11111111"), Selector.from_hex("0x22222222")

    resolution = resolve_collisions([(module_a, [s1, s2]), (module_b, [s2])])
    payload = build_cut(resolution.assignments, CutAction.ADD)

    assert len(payload.entries) == 1
    entry = payload.entries[0]
    assert (entry.module_name, entry.module_address, entry.action) == ("A", A_ADDRESS, CutAction.ADD)
    assert entry.selectors == (s1, s2)
    assert not payload.has_initializer


def test_entries_follow_declaration_order():
    assignments = [
        SelectorAssignment(
            module=ModuleDescriptor(name="B", address=B_ADDRESS),
            selectors=[Selector.from_hex("0xbbbb0001")],
        ),
        SelectorAssignment(
            module=ModuleDescriptor(name="A", address=A_ADDRESS),
            selectors=[Selector.from_hex("0xaaaa0001")],
        ),
    ]

    payload = build_cut(assignments, CutAction.REPLACE)

    assert [e.module_name for e in payload.entries] == ["B", "A"]
    assert payload.module_addresses == [B_ADDRESS, A_ADDRESS]


def test_remove_entries_use_zero_address_on_the_wire():
    assignments = [
        SelectorAssignment(
            module=ModuleDescriptor(name="A", address=A_ADDRESS),
            selectors=[Selector.from_hex("0xaaaa0001")],
        )
    ]

    payload = build_cut(assignments, CutAction.REMOVE)

    assert payload.entries[0].module_address == A_ADDRESS
    assert payload.to_wire()["cut"][0]["moduleAddress"] == ZERO_ADDRESS


def test_undeployed_module_cannot_be_cut():
    assignments = [
        SelectorAssignment(
            module=ModuleDescriptor(name="A"), selectors=[Selector.from_hex("0xaaaa0001")]
        )
    ]

    with pytest.raises(InvalidModuleDescriptorError):
        build_cut(assignments, CutAction.ADD)


def test_cut_entry_without_selectors_is_invalid():
    with pytest.raises(EmptyCutEntryError):
        CutEntry(module_name="A", module_address=A_ADDRESS, action=CutAction.ADD, selectors=())

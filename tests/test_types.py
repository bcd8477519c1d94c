"""
test_types.py - Param node model
"""

import math

import pytest

from prc_hash40 import Hash40, hash40
from prc_types import (
    MalformedInput, MalformedText, ParamError, ParamList, ParamStruct, ParamType,
    ParamTypeError, ParamValue, format_path, to_float32,
)


# =============================================================================
# Scalars
# =============================================================================

@pytest.mark.parametrize('param_type,value', [
    (ParamType.I8, -128), (ParamType.I8, 127),
    (ParamType.U8, 0), (ParamType.U8, 255),
    (ParamType.I16, -32768), (ParamType.U16, 65535),
    (ParamType.I32, -2147483648), (ParamType.U32, 4294967295),
])
def test_int_range_limits_accepted(param_type, value):
    assert ParamValue(param_type, value).value == value


@pytest.mark.parametrize('param_type,value', [
    (ParamType.I8, 128), (ParamType.U8, -1), (ParamType.U8, 256),
    (ParamType.I16, 32768), (ParamType.U16, 65536),
    (ParamType.I32, 2147483648), (ParamType.U32, -1),
])
def test_int_out_of_range_rejected(param_type, value):
    with pytest.raises(ValueError):
        ParamValue(param_type, value)


def test_value_type_checked():
    with pytest.raises(ParamTypeError):
        ParamValue(ParamType.BOOL, 1)
    with pytest.raises(ParamTypeError):
        ParamValue(ParamType.U8, True)
    with pytest.raises(ParamTypeError):
        ParamValue(ParamType.STRING, b'bytes')
    with pytest.raises(ParamTypeError):
        ParamValue(ParamType.HASH, 'name')
    with pytest.raises(ParamTypeError):
        ParamValue(ParamType.LIST, [])
    with pytest.raises(ParamTypeError):
        ParamValue(13, 0)


def test_param_type_error_is_also_type_error():
    with pytest.raises(TypeError):
        ParamValue(ParamType.FLOAT, '1.0')


def test_int_tag_accepted_as_type():
    value = ParamValue(7, 1)
    assert value.type is ParamType.U32


def test_float_rounded_to_binary32():
    value = ParamValue(ParamType.FLOAT, 0.1)
    assert value.value == to_float32(0.1)
    assert value.value != 0.1
    assert ParamValue(ParamType.FLOAT, 2).value == 2.0


def test_float_overflow_rejected():
    with pytest.raises(ValueError):
        ParamValue(ParamType.FLOAT, 1e300)


def test_float_equality_by_bits():
    nan = ParamValue(ParamType.FLOAT, math.nan)
    assert nan == ParamValue(ParamType.FLOAT, math.nan)
    assert ParamValue(ParamType.FLOAT, 0.0) != ParamValue(ParamType.FLOAT, -0.0)


def test_hash_value_from_int():
    assert ParamValue(ParamType.HASH, 5).value == Hash40(5)


def test_string_rejects_nul():
    with pytest.raises(ValueError):
        ParamValue(ParamType.STRING, 'a\x00b')


def test_scalar_immutable_and_hashable():
    value = ParamValue(ParamType.U8, 1)
    with pytest.raises(AttributeError):
        value.value = 2
    assert {value, ParamValue(ParamType.U8, 1)} == {value}
    assert value != ParamValue(ParamType.I8, 1)


# =============================================================================
# Unwrap
# =============================================================================

def test_unwrap_matching_type():
    assert ParamValue(ParamType.U32, 42).unwrap(ParamType.U32) == 42
    node = ParamList()
    assert node.unwrap(ParamType.LIST) is node


def test_unwrap_type_mismatch():
    node = ParamValue(ParamType.U32, 42)
    with pytest.raises(ParamTypeError, match='Expected I32, found U32'):
        node.unwrap(ParamType.I32)
    assert node.try_unwrap(ParamType.I32) is None
    assert ParamStruct().try_unwrap(ParamType.LIST) is None


# =============================================================================
# Lists
# =============================================================================

def test_list_operations():
    items = ParamList([ParamValue(ParamType.U8, 1)])
    items.append(ParamValue(ParamType.STRING, 'x'))
    items.insert(0, ParamValue(ParamType.BOOL, False))
    assert [node.type for node in items] == [ParamType.BOOL, ParamType.U8, ParamType.STRING]

    items[1] = ParamValue(ParamType.U8, 9)
    assert items[1].value == 9
    del items[0]
    assert len(items) == 2
    assert items.pop().value == 'x'
    items.clear()
    assert len(items) == 0


def test_list_equality_is_structural():
    a = ParamList([ParamValue(ParamType.U8, 1), ParamStruct()])
    b = ParamList([ParamValue(ParamType.U8, 1), ParamStruct()])
    assert a == b
    b.append(ParamValue(ParamType.U8, 2))
    assert a != b


def test_list_remove_by_identity():
    child = ParamStruct()
    items = ParamList([ParamStruct(), child])
    items.remove(child)
    assert len(items) == 1
    assert child.owner is None
    with pytest.raises(ValueError):
        items.remove(child)


# =============================================================================
# Structs
# =============================================================================

def test_struct_key_forms():
    node = ParamStruct()
    node['damage'] = ParamValue(ParamType.U32, 1)
    assert hash40('damage') in node
    assert node[hash40('damage')] is node['damage']
    assert node[str(hash40('damage'))] is node['damage']
    assert node[int(hash40('damage'))] is node['damage']
    assert list(node) == [hash40('damage')]


def test_struct_insert_replaces():
    node = ParamStruct()
    node.insert('a', ParamValue(ParamType.U8, 1))
    node.insert('a', ParamValue(ParamType.U8, 2))
    assert len(node) == 1
    assert node['a'].value == 2


def test_struct_keeps_insertion_order_and_sorts_on_request():
    node = ParamStruct([
        (Hash40(0x30), ParamValue(ParamType.U8, 3)),
        (Hash40(0x10), ParamValue(ParamType.U8, 1)),
        (Hash40(0x20), ParamValue(ParamType.U8, 2)),
    ])
    assert list(node) == [Hash40(0x30), Hash40(0x10), Hash40(0x20)]
    assert [key for key, _ in node.sorted_items()] == [Hash40(0x10), Hash40(0x20), Hash40(0x30)]


def test_struct_equality_ignores_order():
    a = ParamStruct([('x', ParamValue(ParamType.U8, 1)), ('y', ParamValue(ParamType.U8, 2))])
    b = ParamStruct([('y', ParamValue(ParamType.U8, 2)), ('x', ParamValue(ParamType.U8, 1))])
    assert a == b


def test_struct_from_mapping():
    node = ParamStruct({'a': ParamValue(ParamType.U8, 1)})
    assert node.get('a').value == 1
    assert node.get('missing') is None
    assert node.to_dict() == {hash40('a'): ParamValue(ParamType.U8, 1)}


def test_struct_removal():
    child = ParamList()
    node = ParamStruct({'a': child, 'b': ParamValue(ParamType.U8, 1)})
    assert node.pop('a') is child
    assert child.owner is None
    assert node.pop('a', None) is None
    with pytest.raises(KeyError):
        node.pop('a')
    del node['b']
    assert len(node) == 0


def test_struct_rejects_non_nodes():
    with pytest.raises(ParamTypeError):
        ParamStruct({'a': 5})


# =============================================================================
# Ownership
# =============================================================================

def test_container_has_one_owner():
    child = ParamStruct()
    first = ParamList([child])
    assert child.owner is first
    with pytest.raises(ValueError):
        ParamList([child])
    with pytest.raises(ValueError):
        ParamStruct({'a': child})


def test_container_reusable_after_removal():
    child = ParamStruct()
    first = ParamList([child])
    first.pop()
    second = ParamStruct({'a': child})
    assert child.owner is second


def test_replaced_container_released():
    old = ParamList()
    node = ParamStruct({'a': old})
    node['a'] = ParamList()
    assert old.owner is None


def test_cycles_rejected():
    outer = ParamStruct()
    inner = ParamList()
    outer['inner'] = inner
    with pytest.raises(ValueError):
        inner.append(outer)
    with pytest.raises(ValueError):
        inner.append(inner)


def test_scalars_shared_freely():
    value = ParamValue(ParamType.U8, 1)
    a = ParamList([value, value])
    b = ParamStruct({'x': value})
    assert a[0] is b['x']


def test_copy_is_deep_and_unowned(sample_tree):
    copied = sample_tree.copy()
    assert copied == sample_tree
    assert copied['map_coll_data'] is not sample_tree['map_coll_data']
    assert copied['map_coll_data'].owner is copied
    copied['map_coll_data'].pop()
    assert len(sample_tree['map_coll_data']) == 2


def test_copy_subtree_into_other_parent(sample_tree):
    other = ParamStruct()
    other['hits'] = sample_tree['hit_target'].copy()
    assert other['hits'] == sample_tree['hit_target']


# =============================================================================
# Errors
# =============================================================================

def test_errors_are_value_errors():
    assert issubclass(MalformedInput, ParamError)
    assert issubclass(MalformedText, ParamError)
    assert issubclass(ParamError, ValueError)


def test_malformed_input_message():
    error = MalformedInput("Unknown type tag 13", 0x2A, (Hash40(0x10), 3))
    assert error.offset == 0x2A
    assert error.path == (Hash40(0x10), 3)
    assert str(error) == "Unknown type tag 13 (offset 0x2A) at root.0x0000000010[3]"


def test_malformed_text_message():
    error = MalformedText("Bad value", "/struct/u8[0]", 3, 7)
    assert str(error) == "Bad value at /struct/u8[0] (line 3, column 7)"


def test_format_path():
    assert format_path(()) == 'root'
    assert format_path([0, Hash40(1)]) == 'root[0].0x0000000001'


# =============================================================================
# String content
# =============================================================================

@pytest.mark.parametrize('text', ['a\x01b', '\x0b', 'x\x1f', '\ufffe'])
def test_string_rejects_control_characters(text):
    with pytest.raises(ValueError):
        ParamValue(ParamType.STRING, text)


def test_string_allows_whitespace_controls():
    value = ParamValue(ParamType.STRING, 'a\tb\r\nc')
    assert value.value == 'a\tb\r\nc'


def test_string_rejects_lone_surrogate():
    with pytest.raises(ValueError, match='UTF-8'):
        ParamValue(ParamType.STRING, '\ud800')


def test_list_remove_scalar_by_value():
    items = ParamList([ParamValue(ParamType.U8, 1), ParamValue(ParamType.U8, 2)])
    items.remove(ParamValue(ParamType.U8, 2))
    assert items == ParamList([ParamValue(ParamType.U8, 1)])
    with pytest.raises(ValueError):
        items.remove(ParamValue(ParamType.I8, 1))


def test_list_remove_container_needs_same_object():
    items = ParamList([ParamStruct()])
    with pytest.raises(ValueError):
        items.remove(ParamStruct())

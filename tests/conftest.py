import os
import sys

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
for path in (ROOT, os.path.join(ROOT, 'tools')):
    if path not in sys.path:
        sys.path.insert(0, path)

from prc_hash40 import Hash40, hash40
from prc_types import ParamList, ParamStruct, ParamType, ParamValue


@pytest.fixture
def sample_tree():
    """Struct using every param type, nested containers included."""
    return ParamStruct([
        ('flag', ParamValue(ParamType.BOOL, True)),
        ('tiny', ParamValue(ParamType.I8, -5)),
        ('byte', ParamValue(ParamType.U8, 200)),
        ('short', ParamValue(ParamType.I16, -30000)),
        ('ushort', ParamValue(ParamType.U16, 65000)),
        ('int', ParamValue(ParamType.I32, -123456789)),
        ('uint', ParamValue(ParamType.U32, 4000000000)),
        ('ratio', ParamValue(ParamType.FLOAT, 0.1)),
        ('kind', ParamValue(ParamType.HASH, hash40('fighter_kind_mario'))),
        ('name', ParamValue(ParamType.STRING, 'Mario')),
        ('map_coll_data', ParamList([
            ParamStruct([
                (Hash40(0x04857FE845), ParamValue(ParamType.HASH, hash40('head'))),
                ('offset_x', ParamValue(ParamType.FLOAT, 1.5)),
            ]),
            ParamStruct([
                (Hash40(0x04857FE845), ParamValue(ParamType.HASH, hash40('hip'))),
                ('offset_x', ParamValue(ParamType.FLOAT, 0.0)),
            ]),
        ])),
        ('hit_target', ParamList([
            ParamValue(ParamType.I32, 1),
            ParamValue(ParamType.I32, 0),
            ParamValue(ParamType.I32, 6),
        ])),
        ('mixed', ParamList([
            ParamValue(ParamType.STRING, 'Mario'),
            ParamValue(ParamType.U8, 1),
            ParamList(),
            ParamStruct(),
        ])),
        ('empty', ParamStruct()),
    ])

from __future__ import annotations

from .schema import Field, Marker, RecordSchema, Repeated, schema_registry
from .tags import ValueType
from .version import AcadVersion

R12 = AcadVersion.R12
R13 = AcadVersion.R13
R14 = AcadVersion.R14
R2000 = AcadVersion.R2000
R2004 = AcadVersion.R2004
R2007 = AcadVersion.R2007

REACTORS = "{ACAD_REACTORS"
XDICTIONARY = "{ACAD_XDICTIONARY"

TABLE = RecordSchema(
    "TABLE",
    (
        Field(2, "name", required=True),
        Field(5, "handle", optional=True),
        Field(330, "owner", optional=True, min_version=R13),
        Marker("AcDbSymbolTable"),
        Field(70, "max_entries"),
    ),
    extra_markers=frozenset({"AcDbDimStyleTable"}),
)

APPID = RecordSchema(
    "APPID",
    (
        Field(5, "handle", optional=True),
        Field(330, "owner", optional=True, min_version=R13),
        Marker("AcDbSymbolTableRecord"),
        Marker("AcDbRegAppTableRecord"),
        Field(2, "name", required=True),
        Field(70, "flags"),
        Field(360, "hard_owner", optional=True, min_version=R13),
    ),
)

LAYER = RecordSchema(
    "LAYER",
    (
        Field(5, "handle", optional=True),
        Field(330, "owner", optional=True, min_version=R13),
        Marker("AcDbSymbolTableRecord"),
        Marker("AcDbLayerTableRecord"),
        Field(2, "name", required=True),
        Field(70, "flags"),
        Field(62, "color", default=7),
        Field(6, "linetype", default="CONTINUOUS"),
        Field(290, "plot", default=True, optional=True, min_version=R2000),
        Field(370, "lineweight", default=-3, min_version=R2000),
        Field(390, "plotstyle_handle", optional=True, min_version=R2000),
        Field(347, "material_handle", optional=True, min_version=R2007),
        Field(420, "true_color", default=None, optional=True, min_version=R2004),
        Field(440, "transparency", default=None, optional=True, min_version=R2004),
    ),
    extra_markers=frozenset({"AcDbSymbolTable"}),
)

STYLE = RecordSchema(
    "STYLE",
    (
        Field(5, "handle", optional=True),
        Field(330, "dictionary_owner_soft", optional=True, min_version=R14, app_group=REACTORS),
        Field(360, "dictionary_owner_hard", optional=True, min_version=R14, app_group=XDICTIONARY),
        Field(330, "owner", optional=True, min_version=R14),
        Marker("AcDbSymbolTableRecord"),
        Marker("AcDbTextStyleTableRecord"),
        Field(2, "name", required=True),
        Field(70, "flags"),
        Field(40, "height"),
        Field(41, "width", default=1.0),
        Field(50, "oblique"),
        Field(71, "generation_flags"),
        Field(42, "last_height", default=2.5),
        Field(3, "font", default="txt"),
        Field(4, "bigfont"),
    ),
)

DIMSTYLE = RecordSchema(
    "DIMSTYLE",
    (
        Field(105, "handle", optional=True),
        Field(330, "owner", optional=True, min_version=R13),
        Marker("AcDbSymbolTableRecord"),
        Marker("AcDbDimStyleTableRecord"),
        Field(2, "name", required=True),
        Field(70, "flags"),
        Field(3, "dimpost"),
        Field(4, "dimapost"),
        Field(5, "dimblk", max_version=R2000),
        Field(6, "dimblk1", max_version=R2000),
        Field(7, "dimblk2", max_version=R2000),
        Field(40, "dimscale", default=1.0),
        Field(41, "dimasz", default=0.18),
        Field(42, "dimexo", default=0.0625),
        Field(43, "dimdli", default=0.38),
        Field(44, "dimexe", default=0.18),
        Field(45, "dimrnd"),
        Field(46, "dimdle"),
        Field(47, "dimtp"),
        Field(48, "dimtm"),
        Field(140, "dimtxt", default=0.18),
        Field(141, "dimcen", default=0.09),
        Field(142, "dimtsz"),
        Field(143, "dimaltf", default=25.4),
        Field(144, "dimlfac", default=1.0),
        Field(145, "dimtvp"),
        Field(146, "dimtfac", default=1.0),
        Field(147, "dimgap", default=0.09),
        Field(148, "dimaltrnd", optional=True, min_version=R2000),
        Field(71, "dimtol"),
        Field(72, "dimlim"),
        Field(73, "dimtih", default=1),
        Field(74, "dimtoh", default=1),
        Field(75, "dimse1"),
        Field(76, "dimse2"),
        Field(77, "dimtad"),
        Field(78, "dimzin"),
        Field(79, "dimazin", optional=True, min_version=R2000),
        Field(170, "dimalt"),
        Field(171, "dimaltd", default=2),
        Field(172, "dimtofl"),
        Field(173, "dimsah"),
        Field(174, "dimtix"),
        Field(175, "dimsoxd"),
        Field(176, "dimclrd"),
        Field(177, "dimclre"),
        Field(178, "dimclrt"),
        Field(179, "dimadec", optional=True, min_version=R2000),
        Field(270, "dimunit", default=2, min_version=R13, max_version=R2000),
        Field(271, "dimdec", default=4, min_version=R13),
        Field(272, "dimtdec", default=4, min_version=R13),
        Field(273, "dimaltu", default=2, min_version=R13),
        Field(274, "dimalttd", default=2, min_version=R13),
        Field(275, "dimaunit", min_version=R13),
        Field(276, "dimfrac", optional=True, min_version=R2000),
        Field(277, "dimlunit", default=2, min_version=R2000),
        Field(278, "dimdsep", default=46, min_version=R2000),
        Field(279, "dimtmove", min_version=R2000),
        Field(280, "dimjust", min_version=R13),
        Field(281, "dimsd1", min_version=R13),
        Field(282, "dimsd2", min_version=R13),
        Field(283, "dimtolj", default=1, min_version=R13),
        Field(284, "dimtzin", min_version=R13),
        Field(285, "dimaltz", min_version=R13),
        Field(286, "dimalttz", min_version=R13),
        Field(287, "dimfit", default=3, min_version=R13, max_version=R2000),
        Field(288, "dimupt", min_version=R13),
        Field(289, "dimatfit", default=3, min_version=R2000),
        Field(340, "dimtxsty_handle", optional=True, min_version=R13),
        Field(341, "dimldrblk_handle", optional=True, min_version=R2000),
        Field(342, "dimblk_handle", optional=True, min_version=R2000),
        Field(343, "dimblk1_handle", optional=True, min_version=R2000),
        Field(344, "dimblk2_handle", optional=True, min_version=R2000),
        Field(371, "dimlwd", default=-2, min_version=R2000),
        Field(372, "dimlwe", default=-2, min_version=R2000),
    ),
)

CLASS = RecordSchema(
    "CLASS",
    (
        Field(1, "name", required=True),
        Field(2, "cpp_class_name", required=True),
        Field(3, "app_name"),
        Field(90, "flags"),
        Field(91, "instance_count", optional=True, min_version=R2004),
        Field(280, "was_a_proxy", type=ValueType.INT),
        Field(281, "is_an_entity", type=ValueType.INT),
    ),
)

DICTIONARY = RecordSchema(
    "DICTIONARY",
    (
        Field(5, "handle", optional=True),
        Field(330, "dictionary_owner_soft", optional=True, min_version=R14, app_group=REACTORS),
        Field(360, "dictionary_owner_hard", optional=True, min_version=R14, app_group=XDICTIONARY),
        Field(330, "owner", optional=True, min_version=R14),
        Marker("AcDbDictionary"),
        Field(280, "hard_owned", optional=True, min_version=R2000),
        Field(281, "cloning", default=1, optional=True, min_version=R2000),
        Repeated(
            "entries",
            (
                Field(3, "name"),
                Field(350, "handle", optional=True),
                Field(360, "hard_handle", optional=True),
            ),
        ),
    ),
    min_version=R13,
)

IMAGEDEF_REACTOR = RecordSchema(
    "IMAGEDEF_REACTOR",
    (
        Field(5, "handle", optional=True),
        Field(330, "dictionary_owner_soft", optional=True, occurrence=1),
        Marker("AcDbRasterImageDefReactor"),
        Field(90, "class_version", default=2),
        Field(330, "image_handle", occurrence=2),
        Field(360, "dictionary_owner_hard", optional=True),
    ),
    extra_markers=frozenset({"AcDbRasterImageDef"}),
    min_version=R14,
)

MLEADERSTYLE = RecordSchema(
    "MLEADERSTYLE",
    (
        Field(5, "handle", optional=True),
        Field(330, "dictionary_owner_soft", optional=True, app_group=REACTORS),
        Field(360, "dictionary_owner_hard", optional=True, app_group=XDICTIONARY),
        Field(330, "owner", optional=True),
        Marker("AcDbMLeaderStyle"),
        Field(170, "content_type", default=2),
        Field(171, "draw_mleader_order_type", default=1),
        Field(172, "draw_leader_order_type"),
        Field(90, "max_leader_segment_points", default=2),
        Field(40, "first_segment_angle_constraint"),
        Field(41, "second_segment_angle_constraint"),
        Field(173, "leader_line_type", default=1),
        Field(91, "leader_line_color", default=-1056964608),
        Field(340, "leader_linetype_handle", optional=True),
        Field(92, "leader_line_weight", default=-2),
        Field(290, "enable_landing", default=True),
        Field(42, "landing_gap", default=2.0),
        Field(291, "enable_dogleg", default=True),
        Field(43, "dogleg_length", default=8.0),
        Field(3, "description", optional=True),
        Field(341, "arrow_head_handle", optional=True),
        Field(44, "arrow_head_size", default=4.0),
        Field(300, "default_mtext_contents", optional=True),
        Field(342, "mtext_style_handle", optional=True),
        Field(174, "text_left_attachment_type", default=1),
        Field(175, "text_angle_type", default=1),
        Field(176, "text_alignment_type"),
        Field(178, "text_right_attachment_type", default=1),
        Field(93, "text_color", default=-1056964608),
        Field(45, "text_height", default=4.0),
        Field(292, "enable_frame_text"),
        Field(297, "text_align_always_left"),
        Field(46, "align_space", default=4.0),
        Field(343, "block_content_handle", optional=True),
        Field(94, "block_content_color", default=-1056964608),
        Field(47, "block_content_scale_x", default=1.0),
        Field(49, "block_content_scale_y", default=1.0),
        Field(140, "block_content_scale_z", default=1.0),
        Field(293, "enable_block_content_scale", default=True),
        Field(141, "block_content_rotation"),
        Field(294, "enable_block_content_rotation", default=True),
        Field(177, "block_content_connection_type"),
        Field(142, "scale", default=1.0),
        Field(295, "overwrite_property_value"),
        Field(296, "is_annotative"),
        Field(143, "break_gap_size", default=3.75),
        Field(271, "text_attachment_direction", optional=True),
        Field(272, "bottom_text_attachment_direction", default=9, optional=True),
        Field(273, "top_text_attachment_direction", default=9, optional=True),
    ),
    min_version=R2007,
)

def _entity(kind: str, *body: Field | Marker) -> RecordSchema:
    return RecordSchema(
        kind,
        (
            Field(5, "handle", optional=True),
            Field(330, "dictionary_owner_soft", optional=True, min_version=R14, app_group=REACTORS),
            Field(360, "dictionary_owner_hard", optional=True, min_version=R14, app_group=XDICTIONARY),
            Field(330, "owner", optional=True, min_version=R13),
            Marker("AcDbEntity"),
            Field(67, "paperspace", optional=True),
            Field(8, "layer", default="0"),
            Field(6, "linetype", default="BYLAYER", optional=True),
            Field(38, "elevation", optional=True, max_version=R13),
            Field(62, "color", default=256, optional=True),
            Field(370, "lineweight", default=-1, optional=True, min_version=R2000),
            Field(48, "linetype_scale", default=1.0, optional=True, min_version=R13),
            Field(60, "invisible", optional=True, min_version=R13),
            *body,
        ),
    )


def _point(code: int, prefix: str, **options) -> tuple[Field, Field, Field]:
    return (
        Field(code, f"{prefix}_x", **options),
        Field(code + 10, f"{prefix}_y", **options),
        Field(code + 20, f"{prefix}_z", **options),
    )


_EXTRUSION = (
    Field(210, "extrusion_x", min_version=R12),
    Field(220, "extrusion_y", min_version=R12),
    Field(230, "extrusion_z", default=1.0, min_version=R12),
)

LINE = _entity(
    "LINE",
    Marker("AcDbLine"),
    Field(39, "thickness", optional=True),
    *_point(10, "start"),
    *_point(11, "end"),
    *_EXTRUSION,
)

POINT = _entity(
    "POINT",
    Marker("AcDbPoint"),
    *_point(10, "location"),
    Field(39, "thickness", optional=True),
    *_EXTRUSION,
    Field(50, "angle", optional=True, min_version=R13),
)

CIRCLE = _entity(
    "CIRCLE",
    Marker("AcDbCircle"),
    Field(39, "thickness", optional=True),
    *_point(10, "center"),
    Field(40, "radius"),
    *_EXTRUSION,
)

ARC = _entity(
    "ARC",
    Marker("AcDbCircle"),
    Field(39, "thickness", optional=True),
    *_point(10, "center"),
    Field(40, "radius"),
    *_EXTRUSION,
    Marker("AcDbArc"),
    Field(50, "start_angle"),
    Field(51, "end_angle"),
)

TEXT = _entity(
    "TEXT",
    Marker("AcDbText"),
    Field(39, "thickness", optional=True),
    *_point(10, "insert"),
    Field(40, "height", default=2.5),
    Field(1, "text"),
    Field(50, "rotation", optional=True),
    Field(41, "width", default=1.0, optional=True),
    Field(51, "oblique", optional=True),
    Field(7, "style", default="STANDARD", optional=True),
    Field(71, "text_generation_flag", optional=True),
    Field(72, "halign", optional=True),
    *_point(11, "align_point"),
    *_EXTRUSION,
    Marker("AcDbText"),
    Field(73, "valign", optional=True),
)

TABLE_KINDS = schema_registry((APPID, LAYER, STYLE, DIMSTYLE))
OBJECT_KINDS = schema_registry((DICTIONARY, IMAGEDEF_REACTOR, MLEADERSTYLE))
ENTITY_KINDS = schema_registry((LINE, POINT, CIRCLE, ARC, TEXT))
RECORD_KINDS = schema_registry(
    (TABLE, CLASS, *TABLE_KINDS.values(), *ENTITY_KINDS.values(), *OBJECT_KINDS.values())
)


def schema_for(kind: str) -> RecordSchema:
    try:
        return RECORD_KINDS[kind.upper()]
    except KeyError:
        raise ValueError(f"unknown record kind: {kind}") from None

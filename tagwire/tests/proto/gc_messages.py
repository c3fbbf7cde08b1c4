"""Hand-written GC records shared by the codec tests."""

from dataclasses import dataclass

from tagwire.proto import Message, ProtoEnum, SchemaRegistry, proto_field

registry = SchemaRegistry()

JOB_ID_NONE = 9223372036854775807


@registry.enum("EGCPlatform")
class EGCPlatform(ProtoEnum):
    k_eGCPlatform_None = 0
    k_eGCPlatform_PC = 1
    k_eGCPlatform_Mac = 2
    k_eGCPlatform_Linux = 3
    k_eGCPlatform_Android = 4


@registry.message("CMsgGCGiftedItems")
@dataclass
class CMsgGCGiftedItems(Message):
    accountid: int = proto_field(1, "uint32")
    giftdefindex: int = proto_field(2, "uint32")
    max_gifts_possible: int = proto_field(3, "uint32")
    num_eligible_recipients: int = proto_field(4, "uint32")
    recipients_accountids: list[int] = proto_field(5, "uint32", repeated=True)


@registry.message("CMsgProtoBufHeader")
@dataclass
class CMsgProtoBufHeader(Message):
    client_steam_id: int = proto_field(1, "fixed64")
    client_session_id: int = proto_field(2, "int32")
    source_app_id: int = proto_field(3, "uint32")
    job_id_source: int = proto_field(10, "fixed64", default=JOB_ID_NONE)
    job_id_target: int = proto_field(11, "fixed64", default=JOB_ID_NONE)
    target_job_name: str = proto_field(12, "string")
    eresult: int = proto_field(13, "int32", default=2)
    error_message: str = proto_field(14, "string")


@registry.message("CMsgSOIDOwner")
@dataclass
class CMsgSOIDOwner(Message):
    type: int = proto_field(1, "uint32")
    id: int = proto_field(2, "uint64")


@registry.message("CMsgSOCacheHaveVersion")
@dataclass
class CMsgSOCacheHaveVersion(Message):
    soid: CMsgSOIDOwner | None = proto_field(1, "message", type_name="CMsgSOIDOwner")
    version: int = proto_field(2, "fixed64")


@registry.message("CMsgClientHello")
@dataclass
class CMsgClientHello(Message):
    version: int = proto_field(1, "uint32")
    socache_have_versions: list[CMsgSOCacheHaveVersion] = proto_field(
        2, "message", repeated=True, type_name="CMsgSOCacheHaveVersion"
    )
    client_session_need: int = proto_field(3, "uint32")
    client_launcher: int = proto_field(4, "enum", type_name="EGCPlatform", default=EGCPlatform.k_eGCPlatform_None)
    secret_key: str = proto_field(5, "string")
    client_language: int = proto_field(6, "uint32")


@registry.message("CMsgGCStatSamples")
@dataclass
class CMsgGCStatSamples(Message):
    deltas: list[int] = proto_field(1, "sint32", repeated=True, packed=True)
    checksums: list[int] = proto_field(2, "fixed32", repeated=True, packed=True)
    flags: list[bool] = proto_field(3, "bool", repeated=True)
    ratio: float = proto_field(4, "double")
    score: float = proto_field(5, "float")
    drift: int = proto_field(6, "sint64")
    raw: bytes = proto_field(7, "bytes")
    total: int = proto_field(8, "int64")
    offset: int = proto_field(9, "sfixed32")
    epoch: int = proto_field(10, "sfixed64")
    platforms: list[int] = proto_field(11, "enum", repeated=True, packed=True, type_name="EGCPlatform")
    names: list[str] = proto_field(12, "string", repeated=True)


@registry.message("CMsgTreeNode")
@dataclass
class CMsgTreeNode(Message):
    value: int = proto_field(1, "uint32")
    child: "CMsgTreeNode | None" = proto_field(2, "message", type_name="CMsgTreeNode")


registry.check()


def nested_nodes(depth: int) -> CMsgTreeNode:
    """A chain of depth records below a root record."""
    node = CMsgTreeNode(value=depth)
    for i in range(depth):
        node = CMsgTreeNode(value=i, child=node)
    return node

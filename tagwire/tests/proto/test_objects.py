"""Tests for plain object conversion"""

import math

from pytest import raises

from tagwire.proto import ToObjectOptions, ValidationError, from_plain_object, to_plain_object, verify

from .gc_messages import (
    JOB_ID_NONE,
    CMsgClientHello,
    CMsgGCGiftedItems,
    CMsgGCStatSamples,
    CMsgProtoBufHeader,
    CMsgSOCacheHaveVersion,
    CMsgSOIDOwner,
    EGCPlatform,
)


def describe_to_plain_object():
    def test_only_non_default_fields(expect):
        msg = CMsgGCGiftedItems(accountid=42, recipients_accountids=[1, 2])
        expect(msg.to_dict()) == {"accountid": 42, "recipients_accountids": [1, 2]}

    def test_defaults(expect):
        obj = CMsgGCGiftedItems(accountid=42).to_dict(defaults=True)
        expect(obj) == {
            "accountid": 42,
            "giftdefindex": 0,
            "max_gifts_possible": 0,
            "num_eligible_recipients": 0,
            "recipients_accountids": [],
        }

    def test_arrays(expect):
        expect(CMsgGCGiftedItems().to_dict(arrays=True)) == {"recipients_accountids": []}

    def test_nulls(expect):
        obj = CMsgSOCacheHaveVersion().to_dict(nulls=True)
        expect(obj) == {"soid": None, "version": None}

    def test_nulls_keep_non_zero_defaults(expect):
        obj = CMsgProtoBufHeader().to_dict(nulls=True)
        expect(obj["eresult"]) == 2
        expect(obj["job_id_source"]) == JOB_ID_NONE
        expect(obj["error_message"]) == None

    def test_enum_names(expect):
        msg = CMsgClientHello(client_launcher=EGCPlatform.k_eGCPlatform_Linux)
        expect(msg.to_dict()) == {"client_launcher": "k_eGCPlatform_Linux"}
        expect(msg.to_dict(enums="int")) == {"client_launcher": 3}

    def test_unknown_enum_value_stays_numeric(expect):
        expect(CMsgClientHello(client_launcher=9999).to_dict()) == {"client_launcher": 9999}

    def test_longs(expect):
        msg = CMsgProtoBufHeader(client_steam_id=76561197960287930)
        expect(msg.to_dict()["client_steam_id"]) == 76561197960287930
        expect(msg.to_dict(longs="str")["client_steam_id"]) == "76561197960287930"
        expect(msg.to_dict(longs="pair")["client_steam_id"]) == {"low": 22202, "high": 17825793, "unsigned": True}

    def test_long_pairs_use_signed_halves(expect):
        obj = CMsgGCStatSamples(total=-1).to_dict(longs="pair")
        expect(obj["total"]) == {"low": -1, "high": -1, "unsigned": False}

    def test_bytes(expect):
        msg = CMsgGCStatSamples(raw=b"\x00\xff")
        expect(msg.to_dict()) == {"raw": "AP8="}
        expect(msg.to_dict(binary="list")) == {"raw": [0, 255]}
        expect(msg.to_dict(binary="raw")) == {"raw": b"\x00\xff"}

    def test_nested(expect):
        msg = CMsgClientHello(
            socache_have_versions=[CMsgSOCacheHaveVersion(soid=CMsgSOIDOwner(type=1, id=2), version=3)]
        )
        expect(to_plain_object(msg)) == {
            "socache_have_versions": [{"soid": {"type": 1, "id": 2}, "version": 3}],
        }

    def test_options_object(expect):
        options = ToObjectOptions(longs="str", defaults=True)
        expect(CMsgSOIDOwner().to_dict(options)) == {"type": 0, "id": "0"}


def describe_from_plain_object():
    def test_round_trip(expect):
        msg = CMsgClientHello(
            version=1,
            socache_have_versions=[CMsgSOCacheHaveVersion(soid=CMsgSOIDOwner(type=1, id=2), version=3)],
            client_launcher=EGCPlatform.k_eGCPlatform_Mac,
            secret_key="s",
        )
        expect(CMsgClientHello.from_dict(msg.to_dict())) == msg

    def test_unknown_keys_are_ignored(expect):
        msg = CMsgGCGiftedItems.from_dict({"accountid": 1, "favorite_color": "red"})
        expect(msg) == CMsgGCGiftedItems(accountid=1)

    def test_none_is_absent(expect):
        msg = CMsgProtoBufHeader.from_dict({"eresult": None})
        expect(msg.eresult) == 2

    def test_enum_by_name_or_number(expect):
        expect(CMsgClientHello.from_dict({"client_launcher": "k_eGCPlatform_PC"}).client_launcher) == 1
        expect(CMsgClientHello.from_dict({"client_launcher": 4}).client_launcher) == EGCPlatform.k_eGCPlatform_Android
        expect(CMsgClientHello.from_dict({"client_launcher": 9999}).client_launcher) == 9999

    def test_long_formats(expect):
        expect(CMsgSOIDOwner.from_dict({"id": "18446744073709551615"}).id) == (1 << 64) - 1
        pair = {"low": 22202, "high": 17825793, "unsigned": True}
        expect(CMsgProtoBufHeader.from_dict({"client_steam_id": pair}).client_steam_id) == 76561197960287930
        expect(CMsgGCStatSamples.from_dict({"total": {"low": -1, "high": -1}}).total) == -1

    def test_integral_floats(expect):
        expect(CMsgGCGiftedItems.from_dict({"accountid": 5.0}).accountid) == 5

    def test_bytes_formats(expect):
        expect(CMsgGCStatSamples.from_dict({"raw": "AP8="}).raw) == b"\x00\xff"
        expect(CMsgGCStatSamples.from_dict({"raw": [0, 255]}).raw) == b"\x00\xff"

    def test_special_floats(expect):
        msg = CMsgGCStatSamples.from_dict({"ratio": "Infinity", "score": "NaN"})
        expect(msg.ratio) == math.inf
        expect(math.isnan(msg.score)) == True

    def test_accepts_records(expect):
        owner = CMsgSOIDOwner(id=9)
        expect(from_plain_object(CMsgSOCacheHaveVersion, {"soid": owner}).soid) == owner
        expect(from_plain_object(CMsgSOIDOwner, owner)) == owner

    def test_raises_validation_error(expect):
        with raises(ValidationError) as exc:
            CMsgGCGiftedItems.from_dict({"accountid": "x"})
        expect(str(exc.value)) == "accountid: integer expected"


def describe_verify():
    def test_valid(expect):
        expect(verify(CMsgGCGiftedItems, {"accountid": 1, "recipients_accountids": [2]})) == None

    def test_integer_expected(expect):
        expect(CMsgGCGiftedItems.verify({"accountid": True})) == "accountid: integer expected"

    def test_out_of_range(expect):
        expect(CMsgGCGiftedItems.verify({"accountid": -1})) == "accountid: -1 out of range for uint32"

    def test_array_expected(expect):
        expect(CMsgGCGiftedItems.verify({"recipients_accountids": 3})) == "recipients_accountids: array expected"

    def test_nested_path(expect):
        obj = {"socache_have_versions": [{"soid": {"id": "abc"}}]}
        expect(CMsgClientHello.verify(obj)) == "socache_have_versions[0].soid.id: integer|Long expected"

    def test_nested_object_expected(expect):
        obj = {"socache_have_versions": [{"soid": 5}]}
        expect(CMsgClientHello.verify(obj)) == "socache_have_versions[0].soid: object expected"

    def test_enum_member_expected(expect):
        expect(CMsgClientHello.verify({"client_launcher": "x"})) == (
            "client_launcher: enum value expected, 'x' is not a member of EGCPlatform"
        )

    def test_top_level_object_expected(expect):
        expect(CMsgGCGiftedItems.verify([1, 2])) == "CMsgGCGiftedItems: object expected"

    def test_scalar_kinds(expect):
        expect(CMsgGCStatSamples.verify({"flags": [1]})) == "flags[0]: boolean expected"
        expect(CMsgGCStatSamples.verify({"ratio": "fast"})) == "ratio: number expected"
        expect(CMsgClientHello.verify({"secret_key": 5})) == "secret_key: string expected"
        expect(CMsgGCStatSamples.verify({"raw": "***"})) == "raw: buffer expected, string is not valid base64"

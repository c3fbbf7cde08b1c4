"""Tests for CLI interface."""

import json
import os

from click.testing import CliRunner

from tagwire.generator.cli import cli
from tagwire.proto.descriptor import FileDescriptorSet

FILE_DIR = os.path.dirname(os.path.realpath(__file__))
GCSDK = f"{FILE_DIR}/gcsdk.proto"


def describe_gen_command():
    def generates_python_code(expect, tmp_path):
        output_file = tmp_path / "gcsdk_pb.py"
        result = CliRunner().invoke(cli, ["gen", "-i", GCSDK, "-o", str(output_file)])
        expect(result.exit_code) == 0
        content = output_file.read_text()
        expect("class CMsgClientHello(Message):" in content) == True
        expect("from tagwire_runtime import" in content) == True

    def uses_installed_runtime_when_asked(expect, tmp_path):
        output_file = tmp_path / "gcsdk_pb.py"
        result = CliRunner().invoke(cli, ["gen", "-i", GCSDK, "-o", str(output_file), "--runtime-import"])
        expect(result.exit_code) == 0
        expect("from tagwire.proto import" in output_file.read_text()) == True

    def reports_schema_errors(expect, tmp_path):
        bad = tmp_path / "bad.proto"
        bad.write_text("message A { optional uint32 x = 1; optional uint32 y = 1; }")
        result = CliRunner().invoke(cli, ["gen", "-i", str(bad), "-o", str(tmp_path / "out.py")])
        expect(result.exit_code) == 1
        expect("already used" in result.output) == True


def describe_runtime_command():
    def writes_runtime_package(expect, tmp_path):
        result = CliRunner().invoke(cli, ["runtime", "-o", str(tmp_path), "--name", "gc_runtime"])
        expect(result.exit_code) == 0
        expect((tmp_path / "gc_runtime" / "wire.py").is_file()) == True
        expect((tmp_path / "gc_runtime" / "__init__.py").is_file()) == True


def describe_compile_command():
    def writes_descriptor_set(expect, tmp_path):
        output_file = tmp_path / "gcsdk.pb"
        result = CliRunner().invoke(cli, ["compile", "-i", GCSDK, "-o", str(output_file)])
        expect(result.exit_code) == 0
        file_set = FileDescriptorSet.decode(output_file.read_bytes())
        expect([f.name for f in file_set.file]) == ["steammessages.proto", "gcsdk.proto"]


def describe_info_command():
    def prints_tables(expect):
        result = CliRunner().invoke(cli, ["info", "-i", GCSDK])
        expect(result.exit_code) == 0
        expect("gcsdk.CMsgGCMultiplexMessage" in result.output) == True
        expect("map<uint32, string>" in result.output) == True
        expect("gcsdk.CMsgGCMultiplexMessage.EMode" in result.output) == True

    def prints_json(expect):
        result = CliRunner().invoke(cli, ["info", "-i", GCSDK, "--json"])
        expect(result.exit_code) == 0
        obj = json.loads(result.output)
        expect(obj["package"]) == "gcsdk"
        expect([m["name"] for m in obj["messages"]][:2]) == ["CMsgGCGiftedItems", "CMsgSOIDOwner"]


def describe_decode_command():
    def decodes_hex_input(expect):
        result = CliRunner().invoke(
            cli,
            ["decode", "-s", GCSDK, "-t", "gcsdk.CMsgGCGiftedItems", "--hex"],
            input="082a1007280128022803\n",
        )
        expect(result.exit_code) == 0
        expect(json.loads(result.output)) == {"accountid": 42, "giftdefindex": 7, "recipients_accountids": [1, 2, 3]}

    def applies_output_options(expect):
        result = CliRunner().invoke(
            cli,
            ["decode", "-s", GCSDK, "-t", "gcsdk.CMsgClientHello", "--hex", "--enums", "int", "--defaults"],
            input="2003",
        )
        expect(result.exit_code) == 0
        obj = json.loads(result.output)
        expect(obj["client_launcher"]) == 3
        expect(obj["version"]) == 0

    def shows_unset_fields_as_null(expect):
        result = CliRunner().invoke(
            cli, ["decode", "-s", GCSDK, "-t", "gcsdk.CMsgGCGiftedItems", "--hex", "--nulls"], input="082a"
        )
        expect(result.exit_code) == 0
        expect(json.loads(result.output)) == {
            "accountid": 42,
            "giftdefindex": None,
            "max_gifts_possible": None,
            "num_eligible_recipients": None,
            "recipients_accountids": [],
        }

    def decodes_delimited_streams(expect, tmp_path):
        data = tmp_path / "stream.bin"
        data.write_bytes(bytes.fromhex("02082a" + "021007"))
        result = CliRunner().invoke(
            cli, ["decode", "-s", GCSDK, "-t", "gcsdk.CMsgGCGiftedItems", "--delimited", str(data)]
        )
        expect(result.exit_code) == 0
        expect(json.loads(result.output)) == [{"accountid": 42}, {"giftdefindex": 7}]

    def reports_malformed_input(expect):
        result = CliRunner().invoke(
            cli, ["decode", "-s", GCSDK, "-t", "gcsdk.CMsgGCGiftedItems", "--hex"], input="0b"
        )
        expect(result.exit_code) == 1
        expect("wire type" in result.output) == True

    def reports_unknown_types(expect):
        result = CliRunner().invoke(cli, ["decode", "-s", GCSDK, "-t", "gcsdk.CMsgMissing"], input="")
        expect(result.exit_code) == 1
        expect("unknown message type" in result.output) == True


def describe_encode_command():
    def encodes_json(expect, tmp_path):
        output_file = tmp_path / "out.bin"
        result = CliRunner().invoke(
            cli,
            ["encode", "-s", GCSDK, "-t", "gcsdk.CMsgGCGiftedItems", "-o", str(output_file)],
            input=json.dumps({"accountid": 42, "giftdefindex": 7, "recipients_accountids": [1, 2, 3]}),
        )
        expect(result.exit_code) == 0
        expect(output_file.read_bytes()) == bytes.fromhex("082a1007280128022803")

    def encodes_hex_and_delimited(expect):
        result = CliRunner().invoke(
            cli,
            ["encode", "-s", GCSDK, "-t", "gcsdk.CMsgGCGiftedItems", "--hex", "--delimited"],
            input=json.dumps([{"accountid": 42}, {"giftdefindex": 7}]),
        )
        expect(result.exit_code) == 0
        expect(result.output.strip()) == "02082a021007"

    def reports_invalid_values(expect):
        result = CliRunner().invoke(
            cli, ["encode", "-s", GCSDK, "-t", "gcsdk.CMsgGCGiftedItems"], input='{"accountid": -1}'
        )
        expect(result.exit_code) == 1
        expect("accountid: -1 out of range for uint32" in result.output) == True

    def reports_invalid_json(expect):
        result = CliRunner().invoke(cli, ["encode", "-s", GCSDK, "-t", "gcsdk.CMsgGCGiftedItems"], input="{")
        expect(result.exit_code) == 1
        expect("invalid JSON" in result.output) == True

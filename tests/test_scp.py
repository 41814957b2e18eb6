import pytest

from limakit.scp import build_scp_args


def test_modern_ssh_uses_scp_url():
    args, insts = build_scp_args(
        ["default:/etc/os-release", "."], "alice", {"default": 60022}
    )
    assert args == ["-3", "--", "scp://alice@127.0.0.1:60022//etc/os-release", "."]
    assert insts == ["default"]


def test_legacy_ssh_uses_port_flag():
    args, insts = build_scp_args(
        ["default:/tmp/x", "."], "alice", {"default": 60022}, legacy_ssh=True
    )
    assert args[:2] == ["-P", "60022"]
    assert args[2:4] == ["-3", "--"]
    assert args[4] == "alice@127.0.0.1:/tmp/x"
    assert insts == ["default"]


def test_flags_order():
    args, _ = build_scp_args(["a", "b"], "alice", {}, recursive=True, debug=True)
    assert args == ["-v", "-r", "-3", "--", "a", "b"]


def test_local_only_has_no_instances():
    args, insts = build_scp_args(["a", "b"], "alice", {})
    assert insts == []
    assert args[-2:] == ["a", "b"]


def test_multiple_colons_rejected():
    with pytest.raises(ValueError, match="multiple colons"):
        build_scp_args(["a:b:c", "."], "alice", {"a": 1})


def test_unknown_instance_rejected():
    with pytest.raises(LookupError, match="missing"):
        build_scp_args(["missing:/x", "."], "alice", {})


def test_legacy_multiple_instances_rejected():
    with pytest.raises(ValueError, match="openSSH v8.0"):
        build_scp_args(
            ["one:/x", "two:/y"], "alice", {"one": 1, "two": 2}, legacy_ssh=True
        )


def test_modern_multiple_instances_allowed():
    args, insts = build_scp_args(["one:/x", "two:/y"], "alice", {"one": 1, "two": 2})
    assert insts == ["one", "two"]
    assert len(args) == 4
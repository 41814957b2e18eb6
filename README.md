# limakit

A library of building blocks for tools that create, edit and connect to
Linux virtual machine instances. It uses only the standard library.

## Modules

| Module | Purpose |
| --- | --- |
| `limakit.guessarg` | Decide whether an argument is a `template://` URL, an HTTP(S) URL, a `file://` URL or a YAML path; derive and validate instance names. |
| `limakit.editflags` | Register `argparse` options for editing an instance configuration (`register_edit`, `register_create`) and turn the options given into yq expressions (`yq_expressions`); completion suggestions for CPUs and memory. |
| `limakit.editorcmd` | Find a text editor: `$VISUAL`, `$EDITOR`, then `editor`, `vim`, `vi`, `emacs` on `PATH`. |
| `limakit.executil` | Run a command whose output is UTF-16LE and get it back as text. |
| `limakit.downloader` | Download or copy files, with an optional per-URL cache, digest checking and decompression through `gzip`, `bzip2`, `xz` or `zstd`. |
| `limakit.fileutils` | Download a file for an expected architecture and combine the errors of several attempts. |
| `limakit.cidata` | Cloud-init data pieces: `TemplateArgs` and its validation, the proxy environment (`setup_env`), certificates, boot commands, disk device names, and writing a layout of `Entry` files to a directory. |
| `limakit.editutil` | Build the warning header shown in the editor and open an editor on some content. |
| `limakit.shell` | Build the remote script that opens a login shell in an instance, with environment-assignment quoting. |
| `limakit.scp` | Build `scp` arguments for copying between the host and instances. |
| `limakit.instfiles` | Remove runtime files (`*.pid`, `*.sock`, `*.tmp`) from an instance directory, factory-reset it, rewrite text in generated files, prune the cache. |
| `limakit.cliutil` | Format positional-argument errors, select names from a list, and read tags from a snapshot listing. |

## Examples

Guess what an argument refers to:

```python
from limakit.guessarg import seems_http_url, seems_yaml_path, inst_name_from_yaml_path

seems_http_url("https://example.com/fedora.yaml")   # True
seems_yaml_path("docker.yaml")                       # True
inst_name_from_yaml_path("/templates/fedora.yaml")   # "fedora"
```

Turn edit options into yq expressions:

```python
from limakit.editflags import yq_expressions, complete_cpus

yq_expressions({"cpus": 2}, new_instance=False)   # [".cpus = 2"]
complete_cpus(20)                                  # [1, 2, 4, 8, 16, 20]
```

Options that only make sense for a new instance (`arch`, `containerd`,
`disk`, `vm-type`) are skipped with a warning when `new_instance` is false.

Download a file through the cache, checking its digest:

```python
from limakit.downloader import download, Status

result = download(
    "/tmp/image.qcow2",
    "https://example.com/image.qcow2",
    cache_dir="/tmp/cache",
    expected_digest="sha256:...",
)
if result.status is Status.USED_CACHE:
    print("served from", result.cache_path)
```

If the local path already exists the result is `Status.SKIPPED`. A digest
that does not match raises `DigestMismatchError`; other failures raise
`DownloadError`.

Build scp arguments:

```python
from limakit.scp import build_scp_args

args, instances = build_scp_args(
    ["default:/etc/os-release", "."], "alice", {"default": 60022}
)
# args == ["-3", "--", "scp://alice@127.0.0.1:60022//etc/os-release", "."]
# instances == ["default"]
```

Quote environment assignments for a remote command:

```python
from limakit.shell import quote_env, build_shell_script

quote_env("FOO=a b")   # "FOO='a b'"
build_shell_script("cd /work", "", ["FOO=1", "ls"])
```

## What the package does not do

limakit has no command-line program and does not start, stop or talk to
virtual machines. It does not write ISO images, render cloud-init template
files, run SSH itself, or provide VM drivers. It supplies the pieces —
argument handling, configuration edits, downloads, cloud-init values and
command lines — that such a tool is built from.

## Running the tests

Install the `test` extra and run `pytest` from the project directory.
import hashlib
import io
import tarfile
from pathlib import Path

from clusterforge.connector.models import Host
from clusterforge.engine.executor import Executor, Status
from clusterforge.resource.remote_binary import RemoteBinaryHandle
from clusterforge.runner.runner import Runner
from clusterforge.runtime.context import PlanContext
from clusterforge.step.files import DownloadFileStep, ExtractArchiveStep, InstallBinaryStep

MEMBERS = ("etcd", "etcdctl", "etcdutl")
PREFIX = "etcd-3.5.9-linux-amd64"


def tarball(payload: bytes) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for name in MEMBERS:
            info = tarfile.TarInfo(f"{PREFIX}/{name}")
            info.size = len(payload)
            info.mode = 0o755
            tf.addfile(info, io.BytesIO(payload))
    return buf.getvalue()


class FakeResponse:
    def __init__(self, body: bytes):
        self.body = body

    def __enter__(self): return self
    def __exit__(self, *exc): return False

    def raise_for_status(self):
        pass

    def iter_content(self, chunk_size=1):
        return iter([self.body])


class FakeSession:
    def __init__(self, body: bytes):
        self.body = body
        self.urls = []

    def get(self, url, stream=False, timeout=None):
        self.urls.append(url)
        return FakeResponse(self.body)


def write(path, data: bytes) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(data)


def node_of(frag, step_type):
    return next(nid for nid, n in frag.nodes.items() if isinstance(n.step, step_type))


def test_replaced_archive_is_extracted_again_and_binary_refreshed(tmp_path):
    good = tarball(b"GOOD")
    stale = b"stale-archive"
    session = FakeSession(good)
    ctx = PlanContext(
        cluster_name="demo",
        work_dir=tmp_path / "work",
        control_host=Host.control_node(arch="amd64"),
        runner=Runner(session=session),
    )
    handle = RemoteBinaryHandle.for_component(
        ctx, "etcd", "3.5.9", binary_key="etcd", checksum=hashlib.sha256(good).hexdigest(),
    )

    # a previous run left a bad archive, its extraction and a finalized binary behind
    extract_dir = handle.extraction_dir(ctx)
    write(handle.download_path(ctx), stale)
    for name in MEMBERS:
        write(extract_dir / PREFIX / name, b"STALE")
    write(handle.path(ctx), b"STALE")
    Path(str(extract_dir) + ".sha256").write_text(hashlib.sha256(stale).hexdigest() + "\n")

    frag = handle.ensure_plan(ctx)
    assert len(frag) == 3

    result = Executor(max_workers=2).execute(frag, ctx.step_context())

    assert result.status == Status.SUCCESS
    assert result.nodes[node_of(frag, DownloadFileStep)].status == Status.SUCCESS
    assert result.nodes[node_of(frag, ExtractArchiveStep)].status == Status.SUCCESS
    assert result.nodes[node_of(frag, InstallBinaryStep)].status == Status.SUCCESS
    assert len(session.urls) == 1

    assert Path(handle.download_path(ctx)).read_bytes() == good
    assert Path(handle.path(ctx)).read_bytes() == b"GOOD"
    assert (extract_dir / PREFIX / "etcdctl").read_bytes() == b"GOOD"

    assert handle.ensure_plan(ctx).is_empty()


def test_unchanged_archive_skips_extraction(tmp_path):
    good = tarball(b"GOOD")
    ctx = PlanContext(
        cluster_name="demo",
        work_dir=tmp_path / "work",
        control_host=Host.control_node(arch="amd64"),
        runner=Runner(session=FakeSession(good)),
    )
    handle = RemoteBinaryHandle.for_component(ctx, "etcd", "3.5.9", binary_key="etcd")
    frag = handle.ensure_plan(ctx)

    first = Executor().execute(frag, ctx.step_context())
    assert first.status == Status.SUCCESS

    # final binary removed by hand; archive and extraction are still current
    Path(handle.path(ctx)).unlink()
    again = handle.ensure_plan(ctx)
    second = Executor().execute(again, ctx.step_context())

    assert second.status == Status.SUCCESS
    assert second.nodes[node_of(again, DownloadFileStep)].status == Status.SKIPPED
    assert second.nodes[node_of(again, ExtractArchiveStep)].status == Status.SKIPPED
    assert second.nodes[node_of(again, InstallBinaryStep)].status == Status.SUCCESS
    assert Path(handle.path(ctx)).read_bytes() == b"GOOD"

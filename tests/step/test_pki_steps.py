import re

from clusterforge.connector.errors import CommandError
from clusterforge.connector.models import Host
from clusterforge.connector.pool import ConnectionPool
from clusterforge.runner.runner import Runner
from clusterforge.runtime.context import StepContext
from clusterforge.step.pki import GenerateCACertStep, GenerateSignedCertStep, san_entries

HOST = Host(name="node1", address="10.0.0.1")


class FakeConn:
    is_local = False

    def __init__(self, host, fail_on=""):
        self.host = host
        self.fail_on = fail_on
        self.cmds = []
        self.files = {}

    def exec(self, cmd, sudo=False, timeout=None):
        self.cmds.append(cmd)
        if self.fail_on and cmd.startswith(self.fail_on):
            return 1, "", "openssl: error"
        return 0, "", ""

    def put_file(self, local_path, remote_path):
        self.files[remote_path] = open(local_path).read()

    def put_text(self, content, remote_path):
        self.files[remote_path] = content

    def close(self):
        pass


def make_ctx(**kw):
    conn = FakeConn(HOST, **kw)
    return StepContext(runner=Runner(), pool=ConnectionPool(factory=lambda h: conn)), conn


def signed(**kw):
    return GenerateSignedCertStep(
        name="member",
        common_name="etcd-1",
        cert_path="/pki/member-etcd-1.crt",
        key_path="/pki/member-etcd-1.key",
        ca_cert_path="/pki/ca.crt",
        ca_key_path="/pki/ca.key",
        sans=("etcd-1", "10.0.0.1", "localhost", "127.0.0.1"),
        **kw,
    )


def test_san_entries_split_ips_and_names():
    assert san_entries(("etcd-1", "10.0.0.1", "::1")) == "DNS:etcd-1,IP:10.0.0.1,IP:::1"


def test_ca_generation_commands():
    ctx, conn = make_ctx()
    GenerateCACertStep(name="ca", common_name="etcd-ca", cert_path="/pki/ca.crt", key_path="/pki/ca.key").run(ctx, HOST)

    assert conn.cmds[0] == "mkdir -p '/pki'"
    assert conn.cmds[1].startswith("openssl req -x509 -new -nodes")
    assert "-subj '/CN=etcd-ca'" in conn.cmds[1]
    assert conn.cmds[2] == "chmod 0600 '/pki/ca.key'"


def test_signed_cert_extensions():
    ext = signed().extensions()
    assert "extendedKeyUsage=serverAuth,clientAuth" in ext
    assert "subjectAltName=DNS:etcd-1,IP:10.0.0.1,DNS:localhost,IP:127.0.0.1" in ext


def test_signed_cert_precheck_verifies_against_ca():
    ctx, conn = make_ctx(fail_on="openssl verify")
    assert signed().precheck(ctx, HOST) is False
    assert conn.cmds[-1].startswith("openssl verify -CAfile '/pki/ca.crt'")


def test_signed_cert_cleans_up_on_failure():
    ctx, conn = make_ctx(fail_on="openssl x509")
    try:
        signed().run(ctx, HOST)
        assert False, "expected CommandError"
    except CommandError:
        pass

    assert "/pki/member-etcd-1.crt.ext" in " ".join(conn.cmds[:2])
    assert conn.cmds[-2:] == ["rm -f '/pki/member-etcd-1.crt.csr'", "rm -f '/pki/member-etcd-1.crt.ext'"]


def x509_serial(cmds):
    x509 = next(c for c in cmds if c.startswith("openssl x509"))
    assert "-CAcreateserial" not in x509
    return re.search(r"-set_serial (0x[0-9a-f]+)", x509).group(1)


def test_signed_cert_sets_its_own_serial():
    ctx, conn = make_ctx()
    signed().run(ctx, HOST)
    first = x509_serial(conn.cmds)

    ctx, conn = make_ctx()
    signed().run(ctx, HOST)
    second = x509_serial(conn.cmds)

    assert len(first) == 34
    assert first != second

# tests/test_sasl.py
"""
测试 pure-sasl DIGEST-MD5 适配层。
前半部分 Mock 掉 SASLClient 只测异常映射，后半部分直接驱动真实的 pure-sasl。
"""

import base64
from unittest.mock import patch

import pytest
from puresasl import SASLError, SASLProtocolException
from puresasl.mechanisms import DigestMD5Mechanism as PureDigestMD5

from tsp_core.exceptions import AuthError, MechanismError
from tsp_core.protocols.sasl import DigestMD5Mechanism


@pytest.fixture
def mock_client_cls():
    with patch("tsp_core.protocols.sasl.SASLClient") as cls:
        cls.return_value.complete = False
        yield cls


def test_start_configures_digest_md5(mock_client_cls):
    DigestMD5Mechanism.start("user", "secret", "tsp", "hexos")

    mock_client_cls.assert_called_once_with(
        "hexos",
        "tsp",
        mechanism="DIGEST-MD5",
        username="user",
        password="secret",
    )


def test_step_round_trips_base64(mock_client_cls):
    client = mock_client_cls.return_value
    client.process.return_value = b'username="user",nonce="n"'

    mech = DigestMD5Mechanism.start("user", "secret", "tsp", "hexos")
    token, complete = mech.step(base64.b64encode(b'nonce="n"').decode())

    client.process.assert_called_once_with(b'nonce="n"')
    assert base64.b64decode(token) == b'username="user",nonce="n"'
    assert complete is False


def test_step_completion_with_empty_response(mock_client_cls):
    client = mock_client_cls.return_value
    client.process.return_value = None
    client.complete = True

    mech = DigestMD5Mechanism.start("user", "secret", "tsp", "hexos")
    token, complete = mech.step(base64.b64encode(b"rspauth=abc").decode())

    assert token == ""
    assert complete is True
    assert mech.complete is True


@pytest.mark.parametrize("error", [SASLError("x"), SASLProtocolException("bad rspauth")])
def test_step_maps_library_errors(mock_client_cls, error):
    mock_client_cls.return_value.process.side_effect = error
    mech = DigestMD5Mechanism.start("user", "secret", "tsp", "hexos")

    with pytest.raises(MechanismError) as exc:
        mech.step(base64.b64encode(b"rspauth=abc").decode())
    assert isinstance(exc.value, AuthError)


def test_step_rejects_invalid_base64(mock_client_cls):
    mech = DigestMD5Mechanism.start("user", "secret", "tsp", "hexos")

    with pytest.raises(MechanismError, match="base64"):
        mech.step("abc")
    mock_client_cls.return_value.process.assert_not_called()


def test_step_rejects_challenge_without_nonce(mock_client_cls):
    mech = DigestMD5Mechanism.start("user", "secret", "tsp", "hexos")

    with pytest.raises(MechanismError, match="nonce"):
        mech.step(base64.b64encode(b'realm="hexos",qop="auth"').decode())
    mock_client_cls.return_value.process.assert_not_called()


# --- 真实 pure-sasl 交互 (不 Mock) ---

CHALLENGE = (
    b'realm="hexos",nonce="OA6MG9tEQGm2hh",qop="auth",'
    b"charset=utf-8,algorithm=md5-sess"
)


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _first_round(mech: DigestMD5Mechanism) -> dict:
    token, complete = mech.step(_b64(CHALLENGE))
    assert complete is False
    return PureDigestMD5.parse_challenge(base64.b64decode(token))


def test_real_digest_response():
    mech = DigestMD5Mechanism.start("test_user", "test_password", "tsp", "hexos")

    token, complete = mech.step(_b64(CHALLENGE))
    response = base64.b64decode(token)

    assert complete is False
    assert b'digest-uri="tsp/hexos"' in response
    assert b'username="test_user"' in response
    assert b'nonce="OA6MG9tEQGm2hh"' in response
    assert b", " not in response


def test_real_rspauth_accepted(digest_rspauth):
    mech = DigestMD5Mechanism.start("test_user", "test_password", "tsp", "hexos")
    fields = _first_round(mech)

    rspauth = digest_rspauth(fields, "test_password")
    token, complete = mech.step(_b64(b"rspauth=" + rspauth))

    assert token == ""
    assert complete is True
    assert mech.complete is True


def test_real_rspauth_mismatch():
    mech = DigestMD5Mechanism.start("test_user", "test_password", "tsp", "hexos")
    _first_round(mech)

    with pytest.raises(MechanismError, match="DIGEST-MD5"):
        mech.step(_b64(b"rspauth=00000000000000000000000000000000"))
    assert mech.complete is False


def test_real_challenge_without_nonce():
    mech = DigestMD5Mechanism.start("test_user", "test_password", "tsp", "hexos")

    with pytest.raises(MechanismError, match="nonce"):
        mech.step(_b64(b'realm="hexos",qop="auth"'))

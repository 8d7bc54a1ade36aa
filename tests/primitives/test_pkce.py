import base64
import hashlib

import pytest

from oidflow.models.errors import MalformedRequestError
from oidflow.primitives.pkce import (
    PLAIN,
    S256,
    PKCEParameters,
    code_challenge,
    generate_code_verifier,
)

# RFC 7636 Appendix B
RFC_VERIFIER = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
RFC_CHALLENGE = "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


class TestCodeChallenge:
    def test_s256_matches_rfc_example(self) -> None:
        # Act
        challenge = code_challenge(RFC_VERIFIER, S256)

        # Assert
        assert challenge == RFC_CHALLENGE

    def test_s256_is_unpadded_base64url_sha256(self) -> None:
        # Arrange
        verifier = generate_code_verifier()

        # Act
        challenge = code_challenge(verifier)

        # Assert
        expected = (
            base64.urlsafe_b64encode(hashlib.sha256(verifier.encode("ascii")).digest())
            .decode("ascii")
            .rstrip("=")
        )
        assert challenge == expected
        assert "=" not in challenge

    def test_plain_passes_verifier_through(self) -> None:
        assert code_challenge(RFC_VERIFIER, PLAIN) == RFC_VERIFIER

    def test_unknown_method_is_rejected(self) -> None:
        with pytest.raises(MalformedRequestError, match="Unsupported"):
            code_challenge(RFC_VERIFIER, "S512")


class TestCodeVerifier:
    def test_generate_parameters_crypto_requirements(self) -> None:
        # Act
        params = PKCEParameters.generate()

        # Assert RFC 7636 requirements
        assert 43 <= len(params.code_verifier) <= 128
        assert params.code_challenge_method == "S256"
        assert params.code_challenge == code_challenge(params.code_verifier)
        allowed = set(
            "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
        )
        assert set(params.code_verifier) <= allowed

    def test_generate_parameters_uniqueness(self) -> None:
        # Act - Generate multiple parameters
        params1 = PKCEParameters.generate()
        params2 = PKCEParameters.generate()

        # Assert - Each generation is unique
        assert params1.code_verifier != params2.code_verifier
        assert params1.code_challenge != params2.code_challenge

    @pytest.mark.parametrize("length", [42, 129])
    def test_rejects_out_of_range_length(self, length: int) -> None:
        with pytest.raises(MalformedRequestError):
            generate_code_verifier(length)

    def test_minimum_length_verifier(self) -> None:
        assert len(generate_code_verifier(43)) == 43

import base64
import hashlib

from codegrant.primitives.pkce import (
    CODE_VERIFIER_LENGTH,
    UNRESERVED_CHARACTERS,
    derive_code_challenge,
    generate_code_verifier,
)


class TestGenerateCodeVerifier:
    def test_verifier_meets_rfc_7636_requirements(self) -> None:
        # Act
        verifier = generate_code_verifier()

        # Assert
        assert len(verifier) == CODE_VERIFIER_LENGTH == 128
        assert set(verifier) <= set(UNRESERVED_CHARACTERS)

    def test_alphabet_is_the_66_unreserved_characters(self) -> None:
        assert len(set(UNRESERVED_CHARACTERS)) == 66
        for char in "AZaz09-._~":
            assert char in UNRESERVED_CHARACTERS

    def test_verifiers_are_unique(self) -> None:
        # Act - Generate multiple verifiers
        verifiers = {generate_code_verifier() for _ in range(20)}

        # Assert - Each generation is unique
        assert len(verifiers) == 20


class TestDeriveCodeChallenge:
    def test_matches_rfc_7636_appendix_b_example(self) -> None:
        # Arrange
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"

        # Act
        challenge = derive_code_challenge(verifier)

        # Assert
        assert challenge == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_challenge_is_deterministic_unpadded_base64url(self) -> None:
        # Arrange
        verifier = generate_code_verifier()

        # Act
        first = derive_code_challenge(verifier)
        second = derive_code_challenge(verifier)

        # Assert
        assert first == second
        assert "=" not in first
        assert "+" not in first and "/" not in first
        expected = (
            base64.urlsafe_b64encode(hashlib.sha256(verifier.encode("ascii")).digest())
            .decode("ascii")
            .rstrip("=")
        )
        assert first == expected
        assert len(first) == 43

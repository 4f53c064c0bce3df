import pytest

from shirurexpress.otp import generate_otp, otp_matches


@pytest.mark.parametrize("length", [4, 6])
def test_generated_otp_is_numeric_and_fixed_length(length):
    for _ in range(50):
        code = generate_otp(length)
        assert len(code) == length
        assert code.isdigit()


def test_otp_length_bounds():
    with pytest.raises(ValueError):
        generate_otp(3)


def test_otp_matching_is_exact():
    assert otp_matches("0421", "0421")
    assert not otp_matches("0421", " 0421 ")
    assert not otp_matches("0421", "421")
    assert not otp_matches("0421", "0422")
    assert not otp_matches(None, "0421")
    assert not otp_matches("0421", None)

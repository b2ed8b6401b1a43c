from __future__ import annotations

import pytest

from hackeeg.device import ads1299
from hackeeg.device.ads1299 import Gain, Speed, gain_bits


def test_channel_registers_follow_chnset_base():
    assert ads1299.CH1SET == 0x05
    assert ads1299.CH8SET == 0x0C
    assert ads1299.MISC1 == 0x15


def test_gain_codes_shift_into_gain_field():
    assert gain_bits(Gain.X1) == 0x00
    assert gain_bits(Gain.X4) == 0x20
    assert gain_bits(Gain.X24) == 0x60
    assert gain_bits(Gain.X24) & ~(ads1299.GAINn2 | ads1299.GAINn1 | ads1299.GAINn0) == 0


def test_gain_from_factor():
    assert Gain.from_factor(4) is Gain.X4
    assert Gain.from_factor(24).factor == 24
    assert str(Gain.X12) == "Gain X12"
    with pytest.raises(ValueError):
        Gain.from_factor(3)


def test_speed_from_sps():
    assert Speed.from_sps(500) is Speed.HIGH_RES_500_SPS
    assert Speed.from_sps(16000) == 0x00
    assert ads1299.CONFIG1_const | Speed.from_sps(250) == 0x96
    with pytest.raises(ValueError):
        Speed.from_sps(300)

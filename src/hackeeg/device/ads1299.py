"""
ADS1299 register addresses and bit fields.

Only the registers the host actually writes are named here; see the TI
datasheet (SBAS499) for the complete map.
"""

from __future__ import annotations

import enum

NUM_CHANNELS = 8


class SystemCommand(enum.IntEnum):
    WAKEUP = 0x02
    STANDBY = 0x04
    RESET = 0x06
    START = 0x08
    STOP = 0x0A


class ReadCommand(enum.IntEnum):
    RDATAC = 0x10
    SDATAC = 0x11
    RDATA = 0x12


class RegisterCommand(enum.IntEnum):
    RREG = 0x20
    WREG = 0x40


# Device settings
ID = 0x00

# Global settings
CONFIG1 = 0x01
CONFIG2 = 0x02
CONFIG3 = 0x03
LOFF = 0x04

# Channel settings. CHnSET + n addresses channel n (1-based).
CHnSET = 0x04
CH1SET = CHnSET + 1
CH2SET = CHnSET + 2
CH3SET = CHnSET + 3
CH4SET = CHnSET + 4
CH5SET = CHnSET + 5
CH6SET = CHnSET + 6
CH7SET = CHnSET + 7
CH8SET = CHnSET + 8
BIAS_SENSP = 0x0D
BIAS_SENSN = 0x0E
LOFF_SENSP = 0x0F
LOFF_SENSN = 0x10
LOFF_FLIP = 0x11

# Lead-off status
LOFF_STATP = 0x12
LOFF_STATN = 0x13

GPIO = 0x14
MISC1 = 0x15
MISC2 = 0x16
CONFIG4 = 0x17

# CONFIG1
CONFIG1_const = 0x90

# CONFIG2
CONFIG2_const = 0xC0
INT_TEST = 0x10
TEST_AMP = 0x04
TEST_FREQ1 = 0x02
TEST_FREQ0 = 0x01
INT_TEST_4HZ = INT_TEST
INT_TEST_8HZ = INT_TEST | TEST_FREQ0
INT_TEST_DC = INT_TEST | TEST_FREQ1 | TEST_FREQ0

# CONFIG3
CONFIG3_const = 0x60
PD_REFBUF = 0x80
BIAS_MEAS = 0x10
BIASREF_INT = 0x08
PD_BIAS = 0x04

# CHnSET
PDn = 0x80
GAINn2 = 0x40
GAINn1 = 0x20
GAINn0 = 0x10
SRB2 = 0x08
MUXn2 = 0x04
MUXn1 = 0x02
MUXn0 = 0x01

# CHnSET input multiplexer selections
ELECTRODE_INPUT = 0x00
SHORTED = MUXn0
BIAS_MEAS_INPUT = MUXn1
MVDD = MUXn1 | MUXn0
TEMP = MUXn2
TEST_SIGNAL = MUXn2 | MUXn0
BIAS_DRP = MUXn2 | MUXn1
BIAS_DRN = MUXn2 | MUXn1 | MUXn0

# MISC1
MISC1_const = 0x00
SRB1 = 0x20


class Gain(enum.IntEnum):
    """PGA gain codes (datasheet table 10), unshifted."""

    X1 = 0b000
    X2 = 0b001
    X4 = 0b010
    X6 = 0b011
    X8 = 0b100
    X12 = 0b101
    X24 = 0b110

    @classmethod
    def from_factor(cls, factor: int) -> "Gain":
        try:
            return cls[f"X{int(factor)}"]
        except KeyError:
            valid = ", ".join(str(g.factor) for g in cls)
            raise ValueError(f"Invalid gain {factor}; expected one of {valid}") from None

    @property
    def factor(self) -> int:
        return int(self.name[1:])

    def __str__(self) -> str:
        return f"Gain {self.name}"


def gain_bits(gain: Gain | int) -> int:
    """
    Place a gain code into the GAINn[2:0] field (bits 6:4) of a CHnSET value.

    The code is shifted on purpose: OR-ing the bare code into CHnSET would
    land in the MUXn bits and select the wrong input instead of the gain.
    """
    return (int(gain) << 4) & (GAINn2 | GAINn1 | GAINn0)


class Speed(enum.IntEnum):
    """CONFIG1 DR[2:0] output data rates (high-resolution mode)."""

    HIGH_RES_16k_SPS = 0x00
    HIGH_RES_8k_SPS = 0x01
    HIGH_RES_4k_SPS = 0x02
    HIGH_RES_2k_SPS = 0x03
    HIGH_RES_1k_SPS = 0x04
    HIGH_RES_500_SPS = 0x05
    HIGH_RES_250_SPS = 0x06

    @classmethod
    def from_sps(cls, sps: int) -> "Speed":
        try:
            return _SPEED_BY_SPS[int(sps)]
        except KeyError:
            valid = ", ".join(str(rate) for rate in sorted(_SPEED_BY_SPS))
            raise ValueError(f"Invalid sample rate {sps}; expected one of {valid}") from None


_SPEED_BY_SPS = {
    250: Speed.HIGH_RES_250_SPS,
    500: Speed.HIGH_RES_500_SPS,
    1000: Speed.HIGH_RES_1k_SPS,
    2000: Speed.HIGH_RES_2k_SPS,
    4000: Speed.HIGH_RES_4k_SPS,
    8000: Speed.HIGH_RES_8k_SPS,
    16000: Speed.HIGH_RES_16k_SPS,
}

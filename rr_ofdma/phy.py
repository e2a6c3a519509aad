"""
HE PHY Timing Model

Frame durations used by the simulated MAC layer. This is a timing
proxy, not a full PHY: preamble fields are given fixed durations and
the data portion is sized from the RU's data subcarriers and the HE MCS.

Key equations:
  N_DBPS  = N_SD(RU) * N_BPSCS(MCS) * R(MCS) * N_SS
  N_SYM   = ceil((16 + 8 * bytes + 6) / N_DBPS)        (SERVICE + tail bits)
  T_PPDU  = T_preamble + N_SYM * (12.8 us + T_GI)

  L-SIG LENGTH of an HE TB PPDU (m = 2):
  LENGTH  = ceil((T - 20 us) / 4 us) * 3 - 3 - m

References:
- IEEE Std 802.11ax-2021, Table 27-55..27-64 (HE-MCS parameters)
- IEEE Std 802.11ax-2021, Eq. (27-11) (L-SIG LENGTH of HE TB PPDUs)
- IEEE Std 802.11-2020, Section 17.4 (legacy OFDM timing)
"""

from __future__ import annotations

import math

import numpy as np

from .he_ru import RuType, get_data_subcarriers


# HE-MCS 0..11: coded bits per subcarrier and coding rate
HE_MCS_BPSCS = np.array([1, 2, 2, 4, 4, 6, 6, 6, 8, 8, 10, 10], dtype=np.float64)
HE_MCS_RATE = np.array([1 / 2, 1 / 2, 3 / 4, 1 / 2, 3 / 4, 2 / 3,
                        3 / 4, 5 / 6, 3 / 4, 5 / 6, 3 / 4, 5 / 6], dtype=np.float64)
MAX_HE_MCS = len(HE_MCS_BPSCS) - 1
HE_GUARD_INTERVALS_NS = (800, 1600, 3200)

SIFS_US = 16.0
LEGACY_PREAMBLE_US = 20.0
LEGACY_SYMBOL_US = 4.0
LEGACY_CONTROL_RATE_MBPS = 6
HE_SYMBOL_US = 12.8

# aPPDUMaxTime for HE PPDUs
MAX_HE_PPDU_DURATION_US = 5484.0
# Maximum A-MPDU length an HE STA can receive
MAX_HE_AMPDU_SIZE = 6500631

SERVICE_BITS = 16
TAIL_BITS = 6

# Control frame sizes in bytes (MAC header and FCS included)
BLOCK_ACK_REQ_SIZE = 24
COMPRESSED_BLOCK_ACK_SIZE = 32
MULTI_STA_BLOCK_ACK_BASE_SIZE = 22
MULTI_STA_BLOCK_ACK_PER_STA_SIZE = 14
TRIGGER_COMMON_SIZE = 28
TRIGGER_USER_INFO_SIZE = 6


def he_symbol_duration_us(guard_interval_ns: int) -> float:
    """HE OFDM symbol duration including the guard interval."""
    if guard_interval_ns not in HE_GUARD_INTERVALS_NS:
        raise ValueError(f"Invalid HE guard interval: {guard_interval_ns} ns")
    return HE_SYMBOL_US + guard_interval_ns / 1000.0


def he_data_bits_per_symbol(ru_type: RuType, mcs: int, nss: int = 1) -> float:
    """Data bits carried by one HE symbol on the given RU."""
    if not 0 <= mcs <= MAX_HE_MCS:
        raise ValueError(f"HE-MCS {mcs} out of range [0, {MAX_HE_MCS}]")
    n_sd = get_data_subcarriers(ru_type)
    return float(n_sd * HE_MCS_BPSCS[mcs] * HE_MCS_RATE[mcs] * nss)


def he_mu_preamble_us(n_users: int, nss: int = 1) -> float:
    """
    HE MU preamble: L-STF/L-LTF/L-SIG, RL-SIG, HE-SIG-A, HE-SIG-B
    (one symbol per two user fields), HE-STF and one HE-LTF per stream.
    """
    sig_b_symbols = max(1, math.ceil(n_users / 2))
    return LEGACY_PREAMBLE_US + 4.0 + 8.0 + 4.0 * sig_b_symbols + 4.0 + 8.0 * nss


def he_tb_preamble_us(nss: int = 1) -> float:
    """HE TB preamble: legacy part, RL-SIG, HE-SIG-A, 8 us HE-STF, HE-LTFs."""
    return LEGACY_PREAMBLE_US + 4.0 + 8.0 + 8.0 + 8.0 * nss


def he_ppdu_duration_us(size_bytes: int, ru_type: RuType, mcs: int, nss: int,
                        guard_interval_ns: int, preamble_us: float) -> float:
    """Duration of an HE PPDU carrying size_bytes on one RU."""
    n_dbps = he_data_bits_per_symbol(ru_type, mcs, nss)
    n_sym = math.ceil((SERVICE_BITS + 8 * size_bytes + TAIL_BITS) / n_dbps)
    return preamble_us + n_sym * he_symbol_duration_us(guard_interval_ns)


def legacy_duration_us(size_bytes: int,
                       rate_mbps: int = LEGACY_CONTROL_RATE_MBPS) -> float:
    """Duration of a non-HT (legacy OFDM) PPDU, used for control frames."""
    n_dbps = rate_mbps * LEGACY_SYMBOL_US
    n_sym = math.ceil((SERVICE_BITS + 8 * size_bytes + TAIL_BITS) / n_dbps)
    return LEGACY_PREAMBLE_US + n_sym * LEGACY_SYMBOL_US


def lsig_length_from_tb_duration(duration_us: float) -> int:
    """L-SIG LENGTH advertising an HE TB PPDU of the given duration."""
    m = 2
    length = math.ceil((duration_us - LEGACY_PREAMBLE_US) / LEGACY_SYMBOL_US) * 3 - 3 - m
    return max(0, int(length))


def tb_duration_from_lsig_length(length: int) -> float:
    """Inverse of lsig_length_from_tb_duration."""
    m = 2
    return math.ceil((length + 3 + m) / 3) * LEGACY_SYMBOL_US + LEGACY_PREAMBLE_US


def multi_sta_block_ack_size(n_stations: int) -> int:
    return MULTI_STA_BLOCK_ACK_BASE_SIZE + MULTI_STA_BLOCK_ACK_PER_STA_SIZE * max(1, n_stations)


def trigger_frame_size(n_users: int) -> int:
    return TRIGGER_COMMON_SIZE + TRIGGER_USER_INFO_SIZE * n_users


def clamp_ul_target_rssi(rssi_dbm: float) -> int:
    """Clamp a UL target RSSI to the range a Trigger frame can encode."""
    return int(np.clip(round(rssi_dbm), -110, -20))


def tx_power_dbm(level: int, start_dbm: float, end_dbm: float,
                 n_levels: int) -> float:
    """Transmit power of a power level, levels evenly spaced in dBm."""
    if n_levels <= 1:
        return start_dbm
    level = int(np.clip(level, 0, n_levels - 1))
    return float(start_dbm + level * (end_dbm - start_dbm) / (n_levels - 1))

"""
Round-robin multi-user scheduler of an HE access point.

Each time the AP gains channel access the MAC calls select_tx_format()
with the head-of-line frame and acts on the returned TxFormat:

    NON_OFDMA     send the frame in an SU PPDU
    DL_OFDMA      call compute_dl_ofdma_info() and send a DL MU PPDU
    UL_OFDMA      call compute_ul_ofdma_info() and send a Basic Trigger
    CONFIG_ERROR  the MAC/scheduler setup cannot produce a valid PPDU,
                  the reason is in ``last_error``

UL OFDMA is only tried right after a DL OFDMA decision, so that the
stations of the last DL MU PPDU are solicited for their UL traffic.

References:
    - IEEE 802.11ax-2021, 26.5.2 (UL MU operation), 26.6 (DL MU operation)
    - IEEE 802.11ax-2021, 9.2.4.6a.4 (buffer status report)
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from . import phy
from .config import OfdmaConfig
from .he_ru import RuSpec
from .mac import BUFFER_STATUS_UNBOUNDED, BUFFER_STATUS_UNKNOWN, MacLayer
from .packer import PackingResult, PackingStrategy, RuPacker, uniform_allocation
from .selector import StationSelector, resolve_start_station
from .traffic import TrafficClassifier
from .types import (
    BlockAckReqType,
    BlockAckType,
    Candidate,
    DlMuAckSequence,
    DlOfdmaInfo,
    Frame,
    HeMuUserInfo,
    StaInfo,
    TriggerFrameType,
    TriggerInfo,
    TxFormat,
    TxParams,
    TxVector,
    UlMuAckSequence,
    UlOfdmaInfo,
    tid_to_ac,
)

logger = logging.getLogger("rr_ofdma.manager")

# Buffered bytes not known to be bounded
BUFFER_SIZE_UNBOUNDED = 0xFFFFFFFF
# Duration of the HE TB PPDU assumed while computing the response time
TB_PPDU_PROBE_DURATION_US = 1000.0

TRIGGERED_DL_ACK_SEQUENCES = (DlMuAckSequence.DL_MU_BAR, DlMuAckSequence.DL_AGGREGATE_TF)


def decode_buffer_status(code: int, ul_psdu_size: int) -> int:
    """
    Bytes buffered by a station according to its last buffer status code.

    255 (unknown) is read as one UL PSDU, 254 as unbounded, anything else
    as a multiple of 256 bytes.
    """
    if code == BUFFER_STATUS_UNKNOWN:
        return ul_psdu_size
    if code == BUFFER_STATUS_UNBOUNDED:
        return BUFFER_SIZE_UNBOUNDED
    return code * 256


def aggregate_buffer_size(codes: Iterable[int], ul_psdu_size: int) -> int:
    """Largest buffered size among the given buffer status codes."""
    max_size = 0
    for code in codes:
        size = decode_buffer_status(code, ul_psdu_size)
        if size == BUFFER_SIZE_UNBOUNDED:
            return BUFFER_SIZE_UNBOUNDED
        max_size = max(max_size, size)
    return max_size


class RrOfdmaManager:
    """
    Decides the transmission format of each channel access and builds the
    DL/UL MU transmission parameters.

    Args:
        mac: MAC/PHY layer the scheduler queries.
        config: scheduler attributes.
        classifier: traffic classes used by the legacy packing strategy.
    """

    def __init__(
        self,
        mac: MacLayer,
        config: Optional[OfdmaConfig] = None,
        classifier: Optional[TrafficClassifier] = None
    ):
        self.mac = mac
        self.config = config or OfdmaConfig()
        self.selector = StationSelector(mac, self.config.n_stations)
        self.packer = RuPacker(classifier, PackingStrategy(self.config.packing_strategy))

        # AID the next selection starts from
        self.start_station = 0
        self.last_error: Optional[str] = None

        self._tx_format = TxFormat.NON_OFDMA
        self._data_info: List[Candidate] = []
        self._sta_info: Dict[str, StaInfo] = OrderedDict()
        self._packing: Optional[PackingResult] = None
        self._dl_ack_sequence = DlMuAckSequence.DL_MU_BAR
        self._tx_vector = TxVector()
        self._tx_params = TxParams()

    @property
    def tx_format(self) -> TxFormat:
        """Format returned by the last decision."""
        return self._tx_format

    @property
    def candidates(self) -> List[Candidate]:
        """Candidates of the last DL decision, in packing order."""
        return list(self._data_info)

    # ------------------------------------------------------------------
    # Format decision
    # ------------------------------------------------------------------

    def select_tx_format(self, frame: Frame) -> TxFormat:
        """Decide how to use the current transmit opportunity."""
        self.last_error = None
        tx_format = None
        if self.config.enable_ul_ofdma and self._tx_format == TxFormat.DL_OFDMA:
            tx_format = self._try_ul_ofdma(frame)
        if tx_format is None:
            tx_format = self._select_dl_ofdma(frame)
        self._tx_format = tx_format
        logger.debug("Selected %s for frame (size=%d, TID=%d)",
                     tx_format.name, frame.size, frame.tid)
        return tx_format

    def _try_ul_ofdma(self, frame: Frame) -> Optional[TxFormat]:
        """UL_OFDMA, DL_OFDMA or CONFIG_ERROR; None to fall back to the DL
        selection."""
        if self.config.ul_psdu_size <= 0:
            return self._config_error(
                "ul_psdu_size must be set to a non-null value when UL OFDMA is enabled")

        ac = tid_to_ac(frame.tid)
        ul_ack_sequence = self.mac.ack_sequence_for_ul_mu(ac)
        if ul_ack_sequence != UlMuAckSequence.UL_MULTI_STA_BLOCK_ACK:
            return self._config_error(
                f"Unsupported UL MU ack sequence: {ul_ack_sequence.name}")

        params = TxParams(ul_mu_ack_sequence=ul_ack_sequence)
        sta_list = self.mac.associated_stations()
        codes = []
        for aid in list(self._tx_vector.user_info):
            address = sta_list.get(aid)
            if address is None:
                logger.warning("STA with AID=%d is no longer associated, not soliciting it", aid)
                del self._tx_vector.user_info[aid]
                continue
            params.enable_block_ack(address, BlockAckType.MULTI_STA)
            codes.append(self.mac.buffer_status(address))

        max_buffer_size = aggregate_buffer_size(codes, self.config.ul_psdu_size)
        if max_buffer_size == 0:
            logger.debug("No station reported buffered UL traffic")
            return None

        max_duration = self.mac.max_ppdu_duration_us(self._tx_vector.preamble)

        if self.mac.txop_limit_us(ac) > 0:
            # the TB PPDU duration is not known yet, remove a known one
            trigger = TriggerInfo.from_tx_vector(TriggerFrameType.BASIC_TRIGGER, self._tx_vector)
            trigger.ul_length = phy.lsig_length_from_tb_duration(TB_PPDU_PROBE_DURATION_US)
            response = (self.mac.response_duration_us(params, self._tx_vector, trigger)
                        + self.mac.trigger_tx_duration_us(trigger)
                        - phy.tb_duration_from_lsig_length(trigger.ul_length))
            remaining = self.mac.txop_remaining_us(ac)
            if response > remaining:
                logger.debug("Remaining TXOP duration is not enough for UL MU exchange")
                self._clear_candidates()
                return TxFormat.DL_OFDMA
            max_duration = min(max_duration, remaining - response)

        first_aid = min(self._tx_vector.user_info)
        buffer_duration = self.mac.tx_duration_us(max_buffer_size, self._tx_vector, first_aid)
        if buffer_duration < max_duration:
            max_duration = buffer_duration
        elif max_duration < self.mac.tx_duration_us(self.config.ul_psdu_size,
                                                    self._tx_vector, first_aid):
            logger.debug("Available time %.1f us is too short for a %d byte PSDU",
                         max_duration, self.config.ul_psdu_size)
            self._clear_candidates()
            return TxFormat.DL_OFDMA

        self._tx_vector.length = phy.lsig_length_from_tb_duration(max_duration)
        self._tx_params = params
        return TxFormat.UL_OFDMA

    def _select_dl_ofdma(self, frame: Frame) -> TxFormat:
        self._clear_candidates()
        sta_list = self.mac.associated_stations()
        if not sta_list:
            return self._no_dl_format("No associated stations")

        self.start_station = resolve_start_station(sta_list, self.start_station)
        primary_ac = tid_to_ac(frame.tid)
        bandwidth = self.mac.channel_width()

        # RU size a full batch would get, used by the time checks
        guess_rus = uniform_allocation(bandwidth, self.config.n_stations)
        aids = list(sta_list)
        pos = aids.index(self.start_station)
        rotated = aids[pos:] + aids[:pos]
        guess = [(sta_list[aid], StaInfo(aid, frame.tid))
                 for aid in rotated[:self.config.n_stations]]

        self._dl_ack_sequence = self.mac.ack_sequence_for_dl_mu(primary_ac)
        self._init_tx_vector_and_params(guess, guess_rus, self._dl_ack_sequence)

        txop_limit = None
        if self.mac.txop_limit_us(primary_ac) > 0:
            trigger = None
            if self._dl_ack_sequence in TRIGGERED_DL_ACK_SEQUENCES:
                trigger = self._get_trigger_frame(self._tx_vector)
                trigger.ul_length = self.mac.ul_length_for_block_acks(trigger, self._tx_params)
            txop_limit = (self.mac.txop_remaining_us(primary_ac)
                          - self.mac.response_duration_us(self._tx_params, self._tx_vector, trigger))
            if txop_limit < 0:
                return self._no_dl_format("Not enough TXOP remaining time")

        selection = self.selector.select(
            sta_list, self.start_station, frame.tid, primary_ac, txop_limit,
            guess_rus[0].ru_type
        )
        if not selection.candidates:
            return self._no_dl_format("The AP does not have suitable frames to transmit")

        self._packing = self.packer.pack(selection.candidates, bandwidth)
        self._data_info = list(self._packing.order)
        self._sta_info = OrderedDict((c.address, c.info) for c in self._data_info)
        self.start_station = selection.next_station
        return TxFormat.DL_OFDMA

    def _no_dl_format(self, reason: str) -> TxFormat:
        if self.config.force_dl_ofdma:
            logger.debug("%s: return DL_OFDMA with an empty set of receivers", reason)
            return TxFormat.DL_OFDMA
        logger.debug("%s: return NON_OFDMA", reason)
        return TxFormat.NON_OFDMA

    def _config_error(self, message: str) -> TxFormat:
        logger.error(message)
        self.last_error = message
        self._clear_candidates()
        return TxFormat.CONFIG_ERROR

    def _clear_candidates(self) -> None:
        self._data_info = []
        self._sta_info = OrderedDict()
        self._packing = None

    # ------------------------------------------------------------------
    # Allocation finalization
    # ------------------------------------------------------------------

    def compute_dl_ofdma_info(self) -> DlOfdmaInfo:
        """
        Bind the packed RUs to the candidates of the last DL decision.

        Candidates left without an RU are moved to the front of the next
        round by pointing the cursor at the first of them.
        """
        if not self._data_info or self._packing is None:
            logger.debug("No candidates: empty DL MU PPDU")
            return DlOfdmaInfo()

        allocations = self._packing.allocations
        n_served = min(len(allocations), len(self._data_info))
        served = self._data_info[:n_served]
        sta_info: Dict[str, StaInfo] = OrderedDict((c.address, c.info) for c in served)

        if n_served < len(self._data_info):
            self.start_station = self._data_info[n_served].aid
            logger.debug("%d candidates not served, next round starts from AID=%d",
                         len(self._data_info) - n_served, self.start_station)

        self._init_tx_vector_and_params(list(sta_info.items()), allocations,
                                        self._dl_ack_sequence)
        for (address, info), ru in zip(sta_info.items(), allocations):
            logger.debug("STA %s (AID=%d) gets RU %s", address, info.aid, ru)
            self._tx_vector.set_ru(ru, info.aid)

        dl_info = DlOfdmaInfo(
            sta_info=dict(sta_info),
            tx_vector=self._tx_vector.copy(),
            params=self._tx_params,
        )
        if self._dl_ack_sequence in TRIGGERED_DL_ACK_SEQUENCES:
            trigger = self._get_trigger_frame(dl_info.tx_vector)
            trigger.ul_length = self.mac.ul_length_for_block_acks(trigger, self._tx_params)
            self._set_target_rssi(trigger)
            dl_info.trigger = trigger
        return dl_info

    def compute_ul_ofdma_info(self) -> UlOfdmaInfo:
        """Basic Trigger soliciting the stations of the last DL MU PPDU."""
        trigger = TriggerInfo.from_tx_vector(TriggerFrameType.BASIC_TRIGGER, self._tx_vector)
        trigger.ul_length = self._tx_vector.length
        self._set_target_rssi(trigger)
        return UlOfdmaInfo(params=self._tx_params, trigger=trigger)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _init_tx_vector_and_params(
        self,
        stations: Sequence[Tuple[str, StaInfo]],
        rus: Sequence[RuSpec],
        ack_sequence: DlMuAckSequence
    ) -> None:
        """Reset the TX vector and the ack setup for the given stations.
        Each station gets a placeholder RU of the type it is paired with."""
        self._tx_vector = TxVector(
            channel_width=self.mac.channel_width(),
            guard_interval_ns=self.mac.guard_interval_ns(),
            tx_power_level=self.mac.default_tx_power_level(),
        )
        self._tx_params = TxParams(dl_mu_ack_sequence=ack_sequence)

        for (address, info), ru in zip(stations, rus):
            mcs, nss = self.mac.data_tx_mode(address)
            logger.debug("Adding STA with AID=%d and MCS=%d to the TX vector", info.aid, mcs)
            self._tx_vector.set_user_info(info.aid, HeMuUserInfo(RuSpec(ru.ru_type, 1, False), mcs, nss))

            if self.mac.ba_agreement_established(address, info.tid):
                bar_type = self.mac.block_ack_req_type(address, info.tid)
                ba_type = self.mac.block_ack_type(address, info.tid)
            else:
                bar_type, ba_type = BlockAckReqType.COMPRESSED, BlockAckType.COMPRESSED

            if ack_sequence in (DlMuAckSequence.DL_SU_FORMAT, DlMuAckSequence.DL_MU_BAR):
                self._tx_params.enable_block_ack_request(address, bar_type, ba_type)
            elif ack_sequence == DlMuAckSequence.DL_AGGREGATE_TF:
                self._tx_params.enable_block_ack(address, ba_type)

    def _get_trigger_frame(self, tx_vector: TxVector) -> TriggerInfo:
        """MU-BAR Trigger soliciting the users of tx_vector at a capped MCS."""
        trigger = TriggerInfo.from_tx_vector(TriggerFrameType.MU_BAR_TRIGGER, tx_vector)
        for user in trigger.user_info.values():
            user.mcs = min(user.mcs, self.config.max_trigger_mcs)
        return trigger

    def _set_target_rssi(self, trigger: TriggerInfo) -> None:
        trigger.ap_tx_power_dbm = self.mac.tx_power_dbm(self.mac.default_tx_power_level())
        sta_list = self.mac.associated_stations()
        for aid in trigger.user_info:
            address = sta_list.get(aid)
            if address is None:
                logger.warning("STA with AID=%d is no longer associated, no target RSSI", aid)
                continue
            trigger.ul_target_rssi_dbm[aid] = phy.clamp_ul_target_rssi(
                self.mac.most_recent_rssi_dbm(address))

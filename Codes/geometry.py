#!/usr/bin/env python3
"""
Toolchain geometry classes.

Position/Direction vectors, channel and detector bookkeeping, and the
Geometry container that owns the tank detectors built from a WCSim file.
Vector methods follow the TVector3 conventions (Physics Vector Package).
"""
import math
from enum import Enum

import numpy as np

import config


class GeoStatus(Enum):
    FULLY_OPERATIONAL = 0
    TANK_ONLY = 1
    MRD_ONLY = 2


class DetectorStatus(Enum):
    OFF = 0
    ON = 1
    UNSTABLE = 2


class ChannelStatus(Enum):
    OFF = 0
    ON = 1
    UNSTABLE = 2


class Position:
    """Three-vector in metres."""

    def __init__(self, x=0., y=0., z=0.):
        self.x = float(x)
        self.y = float(y)
        self.z = float(z)

    def X(self):
        return self.x

    def Y(self):
        return self.y

    def Z(self):
        return self.z

    def as_array(self):
        return np.array([self.x, self.y, self.z])

    def get_phi(self):
        """Angle from beam axis, measured clockwise while looking down [rad]."""
        phi = 0. if self.z == 0 else math.atan(self.x / abs(self.z))
        if self.z < 0.:
            phi = (-math.pi - phi) if self.x < 0. else (math.pi - phi)
        return phi

    def get_theta(self):
        """Angle measured relative to the x-z plane [rad]."""
        if self.x == 0 and self.z == 0:
            return 0.
        return math.atan(self.y / math.sqrt(self.x ** 2 + self.z ** 2))

    def get_r(self):
        return math.sqrt(self.x ** 2 + self.z ** 2)

    def unit_to_centimeter(self):
        self.x *= 100.
        self.y *= 100.
        self.z *= 100.

    def unit_to_meter(self):
        self.x /= 100.
        self.y /= 100.
        self.z /= 100.

    def mag2(self):
        return self.x * self.x + self.y * self.y + self.z * self.z

    def mag(self):
        return math.sqrt(self.mag2())

    def unit(self):
        m = self.mag()
        return Position(self.x / m, self.y / m, self.z / m)

    def dot(self, other):
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other):
        return Position(self.y * other.z - other.y * self.z,
                        self.z * other.x - other.z * self.x,
                        self.x * other.y - other.x * self.y)

    def angle(self, other):
        """Angle between two vectors [rad]."""
        ptot2 = self.mag2() * other.mag2()
        if ptot2 <= 0:
            return 0.
        arg = self.dot(other) / math.sqrt(ptot2)
        return math.acos(min(1., max(-1., arg)))

    def orthogonal(self):
        xx, yy, zz = abs(self.x), abs(self.y), abs(self.z)
        if xx < yy:
            return Position(0, self.z, -self.y) if xx < zz else Position(self.y, -self.x, 0)
        return Position(-self.z, 0, self.x) if yy < zz else Position(self.y, -self.x, 0)

    def perp2(self, other=None):
        """Transverse component squared, w.r.t. the z axis or another vector."""
        if other is None:
            return self.x * self.x + self.y * self.y
        tot = other.mag2()
        ss = self.dot(other)
        per = self.mag2()
        if tot > 0.:
            per -= ss * ss / tot
        return max(per, 0.)

    def __eq__(self, other):
        if not isinstance(other, Position):
            return NotImplemented
        return self.x == other.x and self.y == other.y and self.z == other.z

    def __hash__(self):
        return hash((self.x, self.y, self.z))

    def __neg__(self):
        return type(self)(-self.x, -self.y, -self.z)

    def __add__(self, other):
        return type(self)(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other):
        return type(self)(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, other):
        if isinstance(other, Position):
            return self.dot(other)
        return type(self)(self.x * other, self.y * other, self.z * other)

    __rmul__ = __mul__

    def __repr__(self):
        return f"({self.x:g}, {self.y:g}, {self.z:g})"

    def print(self):
        print(repr(self))


class Direction(Position):
    """Orientation vector of a detector."""


class Channel:
    """Readout channel of a detector and its electronics coordinates."""

    def __init__(self, key, position, stripside, stripnum,
                 adc_crate, adc_card, adc_channel,
                 mt_crate, mt_card, mt_channel,
                 hv_crate, hv_card, hv_channel,
                 status=ChannelStatus.ON):
        self.key = key
        self.position = position
        self.stripside = stripside
        self.stripnum = stripnum
        self.adc_crate = adc_crate
        self.adc_card = adc_card
        self.adc_channel = adc_channel
        self.mt_crate = mt_crate
        self.mt_card = mt_card
        self.mt_channel = mt_channel
        self.hv_crate = hv_crate
        self.hv_card = hv_card
        self.hv_channel = hv_channel
        self.status = status

    def __repr__(self):
        return (f"Channel(key={self.key}, adc={self.adc_crate}/{self.adc_card}/{self.adc_channel}, "
                f"mt={self.mt_crate}/{self.mt_card}/{self.mt_channel}, "
                f"hv={self.hv_crate}/{self.hv_card}/{self.hv_channel})")


class Detector:
    """A photosensor: position, orientation and the channels it owns."""

    def __init__(self, key, element, tank_location, position, direction, name,
                 status=DetectorStatus.ON, avg_time_offset=0.):
        self.key = key
        self.element = element
        self.tank_location = tank_location
        self.position = position
        self.direction = direction
        self.name = name
        self.status = status
        self.avg_time_offset = avg_time_offset
        self.channels = {}
        self.geometry = None

    def add_channel(self, channel):
        self.channels[channel.key] = channel

    def print_channels(self):
        for key, channel in self.channels.items():
            print(f"  channel key {key}: {channel}")


class Geometry:
    """Holds tank dimensions and every detector, keyed by detector element."""

    def __init__(self, version=0., tank_centre=None, tank_radius=0., tank_halfheight=0.,
                 pmt_enclosed_radius=0., pmt_enclosed_halfheight=0.,
                 mrd_width=0., mrd_height=0., mrd_depth=0., mrd_start=0.,
                 num_tank_pmts=0, num_mrd_pmts=0, num_veto_pmts=0, num_lappds=0,
                 status=GeoStatus.FULLY_OPERATIONAL):
        self.version = version
        self.status = status
        self.tank_centre = tank_centre if tank_centre is not None else Position()
        self.tank_radius = tank_radius
        self.tank_halfheight = tank_halfheight
        self.pmt_enclosed_radius = pmt_enclosed_radius
        self.pmt_enclosed_halfheight = pmt_enclosed_halfheight
        self.mrd_width = mrd_width
        self.mrd_height = mrd_height
        self.mrd_depth = mrd_depth
        self.mrd_start = mrd_start
        self.num_tank_pmts = num_tank_pmts
        self.num_mrd_pmts = num_mrd_pmts
        self.num_veto_pmts = num_veto_pmts
        self.num_lappds = num_lappds
        self.num_od_pmts = 0
        self.fiducial_radius = 0.
        self.fiducial_cut_y = 0.
        self.fiducial_cut_z = 0.
        self.detectors = {}
        self._next_free_detector_key = 0
        self._next_free_channel_key = 0
        self._channel_map = {}

    def consume_next_free_detector_key(self):
        key = self._next_free_detector_key
        self._next_free_detector_key += 1
        return key

    def consume_next_free_channel_key(self):
        key = self._next_free_channel_key
        self._next_free_channel_key += 1
        return key

    def add_detector(self, detector):
        """Add a detector to its element set; detector keys must be unique."""
        if self.get_detector(detector.key) is not None:
            raise ValueError(f"Geometry error! add_detector called with non-unique detector key {detector.key}")
        detector.geometry = self
        self.detectors.setdefault(detector.element, {})[detector.key] = detector
        for chankey in detector.channels:
            if chankey in self._channel_map:
                raise ValueError(f"Geometry error! Detector {detector.key} has channel key {chankey} which is not unique")
            self._channel_map[chankey] = detector

    def get_detector(self, key):
        for detset in self.detectors.values():
            if key in detset:
                return detset[key]
        return None

    def channel_to_detector(self, chankey):
        return self._channel_map.get(chankey)

    def get_channel(self, chankey):
        detector = self._channel_map.get(chankey)
        if detector is None:
            return None
        return detector.channels[chankey]

    def get_num_detector_sets(self):
        return len(self.detectors)

    def get_num_detectors_in_set(self, set_name):
        return len(self.detectors.get(set_name, {}))

    def get_num_tank_pmts(self):
        """Tank PMTs (not OD), falling back to the Tank set size."""
        if self.num_tank_pmts == 0:
            self.num_tank_pmts = self.get_num_detectors_in_set("Tank")
        return self.num_tank_pmts

    def get_num_mrd_pmts(self):
        if self.num_mrd_pmts == 0:
            self.num_mrd_pmts = self.get_num_detectors_in_set("MRD")
        return self.num_mrd_pmts

    def get_num_veto_pmts(self):
        if self.num_veto_pmts == 0:
            self.num_veto_pmts = self.get_num_detectors_in_set("Veto")
        return self.num_veto_pmts

    def get_num_lappds(self):
        if self.num_lappds == 0:
            self.num_lappds = self.get_num_detectors_in_set("LAPPD")
        return self.num_lappds

    def get_num_od_pmts(self):
        if self.num_od_pmts == 0:
            self.num_od_pmts = self.get_num_detectors_in_set("OD")
        return self.num_od_pmts

    def global_to_tank_centered(self, position):
        return position - self.tank_centre

    def print_info(self):
        print(f"Num Detectors : {self.get_num_detector_sets()}")
        print(f"Version : {self.version}")
        print(f"Status : {self.status.name.replace('_', ' ')}")
        print(f"tank_centre : {self.tank_centre!r}")
        print(f"tank_radius : {self.tank_radius}")
        print(f"tank_halfheight : {self.tank_halfheight}")
        print(f"pmt_enclosed_radius : {self.pmt_enclosed_radius}")
        print(f"pmt_enclosed_halfheight : {self.pmt_enclosed_halfheight}")
        print(f"tank fiducial radius: {self.fiducial_radius}")
        print(f"tank fiducial z cut: {self.fiducial_cut_z}")
        print(f"tank fiducial y cut: {self.fiducial_cut_y}")
        print(f"mrd_width : {self.mrd_width}")
        print(f"mrd_height : {self.mrd_height}")
        print(f"mrd_depth : {self.mrd_depth}")
        print(f"mrd_start : {self.mrd_start}")
        print(f"Number of tank PMTs : {self.num_tank_pmts}")
        print(f"Number of MRD PMTs : {self.num_mrd_pmts}")
        print(f"Number of veto PMTs : {self.num_veto_pmts}")
        print(f"Number of OD PMTs : {self.num_od_pmts}")
        print(f"Number of LAPPDs : {self.num_lappds}")


class ElectronicsCounter:
    """Hands out ADC/MT/HV crate-card-channel numbers monotonically."""

    def __init__(self):
        self.adc_crate = self.adc_card = self.adc_channel = 0
        self.mt_crate = self.mt_card = self.mt_channel = 0
        self.hv_crate = self.hv_card = self.hv_channel = 0

    def advance(self):
        self.adc_channel += 1
        if self.adc_channel >= config.ADC_CHANNELS_PER_CARD:
            self.adc_channel = 0
            self.adc_card += 1
            self.mt_channel += 1
        if self.adc_card >= config.ADC_CARDS_PER_CRATE:
            self.adc_card = 0
            self.adc_crate += 1
        if self.mt_channel >= config.MT_CHANNELS_PER_CARD:
            self.mt_channel = 0
            self.mt_card += 1
        if self.mt_card >= config.MT_CARDS_PER_CRATE:
            self.mt_card = 0
            self.mt_crate += 1
        self.hv_channel += 1
        if self.hv_channel >= config.CAEN_HV_CHANNELS_PER_CARD:
            self.hv_channel = 0
            self.hv_card += 1
        if self.hv_card >= config.CAEN_HV_CARDS_PER_CRATE:
            self.hv_card = 0
            self.hv_crate += 1


def construct_toolchain_geometry(wcsim_geom, verbose=False):
    """
    Build the toolchain Geometry from a WCSim geometry record.

    Returns the geometry plus the tube-number -> channel-key and
    channel-key -> tube-number maps.
    """
    tank_centre = Position(*(np.asarray(wcsim_geom.offset) * config.CM_TO_M))
    geom = Geometry(
        version=float(config.WCSIM_GEOMETRY_VERSION),
        tank_centre=tank_centre,
        tank_radius=wcsim_geom.cyl_radius * config.CM_TO_M,
        # the toolchain keeps the full cylinder length in its halfheight slot
        tank_halfheight=wcsim_geom.cyl_length * config.CM_TO_M,
        pmt_enclosed_radius=config.PMT_ENCLOSED_RADIUS,
        pmt_enclosed_halfheight=config.PMT_ENCLOSED_HALFHEIGHT,
        num_tank_pmts=wcsim_geom.num_pmts,
        status=GeoStatus.FULLY_OPERATIONAL,
    )
    if verbose:
        print(f"constructed geometry with tank origin {tank_centre!r}")

    tubeid_to_channelkey = {}
    channelkey_to_tubeid = {}
    counter = ElectronicsCounter()

    for pmt in wcsim_geom.pmts[:wcsim_geom.num_pmts]:
        detkey = geom.consume_next_free_detector_key()
        detector = Detector(
            detkey,
            config.TANK_DETECTOR_ELEMENT,
            config.TANK_LOCATION,
            Position(*(np.asarray(pmt.position) * config.CM_TO_M)),
            Direction(*pmt.orientation),
            pmt.name,
            DetectorStatus.ON,
            0.,
        )

        chankey = geom.consume_next_free_channel_key()
        tubeid_to_channelkey[pmt.tube_no] = chankey
        channelkey_to_tubeid[chankey] = pmt.tube_no

        # cards and channels are arbitrary for simulation
        counter.advance()
        channel = Channel(
            chankey, Position(0, 0, 0), 0, 0,
            counter.adc_crate, counter.adc_card, counter.adc_channel,
            counter.mt_crate, counter.mt_card, counter.mt_channel,
            counter.hv_crate, counter.hv_card, counter.hv_channel,
            ChannelStatus.ON,
        )
        detector.add_channel(channel)
        geom.add_detector(detector)

    return geom, tubeid_to_channelkey, channelkey_to_tubeid

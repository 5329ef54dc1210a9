#!/usr/bin/env python3
"""
MC truth records (particles and PMT hits) built from a WCSim trigger.
"""
import math
from dataclasses import dataclass, field
from typing import List

import config
from geometry import Direction, Position


class UnknownTubeError(KeyError):
    """A digit refers to a tube id that has no channel key."""


@dataclass
class MCParticle:
    pdg: int
    start_energy: float
    stop_energy: float
    start_vertex: Position
    stop_vertex: Position
    start_time: float  # ns, relative to the trigger date
    stop_time: float
    direction: Direction
    track_length: float  # m
    track_id: int
    parent_pdg: int
    flag: int
    parent_track_id: int = 0
    creator: int = 0
    destroyer: int = 0

    @property
    def is_primary(self):
        return self.parent_pdg == 0


@dataclass
class MCHit:
    channel_key: int
    time: float
    charge: float
    parents: List[int] = field(default_factory=list)


def keep_track(track, allow_zero_flag=config.ALLOW_ZERO_FLAG):
    """Flag -1 marks saved particles; flag 0 is kept too when zero flags are allowed."""
    if track.flag == -1:
        return True
    return allow_zero_flag and track.flag == 0


def particle_from_track(track, event_time):
    start = Position(*track.start) * config.CM_TO_M
    stop = Position(*track.stop) * config.CM_TO_M
    length = math.sqrt(sum((b - a) ** 2 for a, b in zip(track.start, track.stop))) * config.CM_TO_M
    return MCParticle(
        pdg=track.ipnu,
        start_energy=track.energy,
        stop_energy=track.end_energy,
        start_vertex=start,
        stop_vertex=stop,
        start_time=track.time - event_time,
        stop_time=track.stop_time - event_time,
        direction=Direction(*track.direction),
        track_length=length,
        track_id=track.track_id,
        parent_pdg=track.parent_type,
        flag=track.flag,
        parent_track_id=track.parent_id,
        creator=track.creator,
        destroyer=track.destroyer,
    )


def load_mc_particles(trigger, allow_zero_flag=config.ALLOW_ZERO_FLAG, verbose=False):
    """
    Convert the saved tracks of a trigger into MCParticles.

    Returns the particle list and a map from WCSim track id to list index.
    """
    particles = []
    trackid_to_index = {}
    for track in trigger.tracks:
        if verbose and track.parent_type == 0:
            print(f"flag (track): {track.flag}, PDG: {track.ipnu}, energy: {track.energy}, "
                  f"stop energy: {track.end_energy}")
        if not keep_track(track, allow_zero_flag):
            continue
        trackid_to_index[track.track_id] = len(particles)
        particles.append(particle_from_track(track, trigger.date))
    return particles, trackid_to_index


def total_pe(trigger):
    return sum(hit.total_pe for hit in trigger.cherenkov_hits)


def _hit_time(trigger, photon_id):
    if 0 <= photon_id < len(trigger.hit_times):
        return trigger.hit_times[photon_id]
    return None


def get_hit_parent_ids(digit, first_trigger, trackid_to_index):
    """Indices of the saved MCParticles whose photons contributed to a digit."""
    parents = []
    for photon_id in digit.photon_ids:
        hit_time = _hit_time(first_trigger, photon_id)
        if hit_time is None:
            print(f"ERROR: hit time for photon {photon_id} is missing")
            continue
        # photons from unsaved particles have no index
        if hit_time.parent_id in trackid_to_index:
            parents.append(trackid_to_index[hit_time.parent_id])
    return parents


def earliest_photon_time(digit, first_trigger):
    times = []
    for photon_id in digit.photon_ids:
        hit_time = _hit_time(first_trigger, photon_id)
        if hit_time is None:
            print(f"ERROR: retrieval of photon {photon_id} from digit returned nothing")
            continue
        times.append(hit_time.true_time)
    return min(times, default=999999999999.)


def load_mc_hits(trigger, first_trigger, tubeid_to_channelkey, trackid_to_index,
                 use_smeared_digit_time=config.USE_SMEARED_DIGIT_TIME):
    """
    Group the digitized hits of a trigger by channel key.

    Raises UnknownTubeError for a digit whose tube id has no channel key.
    """
    hits = {}
    for digit in trigger.digi_hits:
        if digit.tube_id not in tubeid_to_channelkey:
            raise UnknownTubeError(f"tank PMT {digit.tube_id} has no associated channel key")
        key = tubeid_to_channelkey[digit.tube_id]
        if use_smeared_digit_time:
            time = digit.t - config.HISTORIC_TRIGGER_OFFSET
        else:
            time = earliest_photon_time(digit, first_trigger)
        parents = get_hit_parent_ids(digit, first_trigger, trackid_to_index)
        hits.setdefault(key, []).append(MCHit(key, time, digit.q, parents))
    return hits

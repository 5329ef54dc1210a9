#!/usr/bin/env python3
"""
Per-event CNN images from the PMT hits.

Hits are accumulated per PMT inside the time window (charge, mean time, first
time), normalised to the event extrema and filled into the geometric and the
PMT-wise 2D histograms. Histograms are hist.Hist objects with regular axes;
bin numbers follow ROOT (bin 0 underflow, bin n + 1 overflow) and index
the flow view directly.
"""
from dataclasses import dataclass, field

import hist
import numpy as np

import config

NORMAL = "Normal"
CHARGE_WEIGHTED = "Charge-Weighted"
DATA_MODES = (NORMAL, CHARGE_WEIGHTED)

GEOMETRIC = "Geometric"
PMT_WISE = "PMT-wise"
SAVE_MODES = (GEOMETRIC, PMT_WISE)

# (image kind, histogram name, geometric title, PMT-wise title)
IMAGE_KINDS = (
    ('charge', 'hist_cnn', 'EventDisplay (CNN)', 'EventDisplay (CNN, pmt wise)'),
    ('time', 'hist_cnn_time', 'EventDisplay Time (CNN)', 'EventDisplay Time (CNN, pmt wise)'),
    ('firsttime', 'hist_cnn_time_first', 'EventDisplay First HitTime (CNN)',
     'EventDisplay First Hit Time (CNN, pmt wise)'),
    ('charge_abs', 'hist_cnn_abs', 'EventDisplay Charge(CNN)', 'EventDisplay Charge (CNN, pmt wise)'),
    ('time_abs', 'hist_cnn_abs_time', 'EventDisplay Absolute Time (CNN)',
     'EventDisplay Absolute Time (CNN, pmt wise)'),
    ('firsttime_abs', 'hist_cnn_abs_time_first', 'EventDisplay Absolute First HitTime (CNN)',
     'EventDisplay Absolute First Hit Time (CNN, pmt wise)'),
)
IMAGE_ORDER = tuple(kind for kind, _, _, _ in IMAGE_KINDS)


def regular_hist1d(name, title, bins, hist_range, xlabel=""):
    """Fixed-width 1D histogram with under/overflow, written to ROOT as a TH1."""
    h = hist.Hist(hist.axis.Regular(bins, *hist_range, name="x", label=xlabel),
                  storage=hist.storage.Double(), name=name, label=title)
    h.title = title
    return h


def regular_hist2d(name, title, xbins, xrange, ybins, yrange):
    """Fixed-width 2D image with flow bins on both axes, indexed [x, y]."""
    h = hist.Hist(hist.axis.Regular(xbins, *xrange, name="x", label="x"),
                  hist.axis.Regular(ybins, *yrange, name="y", label="y"),
                  storage=hist.storage.Double(), name=name, label=title)
    h.title = title
    return h


def find_bin(h, *values):
    """ROOT-style bin numbers: 0 is the underflow, n + 1 the overflow."""
    return tuple(int(axis.index(value)) + 1 for axis, value in zip(h.axes, values))


def get_bin_content(h, *bins):
    return h.view(flow=True)[bins]


def set_bin_content(h, binx, biny, value):
    h.view(flow=True)[binx, biny] = value


def add_bin_content(h, binx, biny, value):
    h.view(flow=True)[binx, biny] += value


def image_row(h):
    """In-range content flattened with y bins outer and x bins inner."""
    return h.values().T.ravel()


@dataclass
class PMTResponse:
    charge: float = 0.
    time: float = 0.
    first_time: float = 0.
    nhits: int = 0


@dataclass
class Extrema:
    max_charge: float
    min_time: float
    max_time: float
    min_first_time: float
    max_first_time: float


@dataclass
class EventImages:
    mc_event: int
    geometric: dict
    pmtwise: dict
    h_time: hist.Hist
    h_charge: hist.Hist
    responses: dict = field(default_factory=dict)
    extrema: Extrema = None

    @property
    def total_charge(self):
        return sum(r.charge for r in self.responses.values())

    @property
    def num_hit_pmts(self):
        return len(self.responses)

    def images(self, save_mode):
        if save_mode == GEOMETRIC:
            return self.geometric
        if save_mode == PMT_WISE:
            return self.pmtwise
        raise ValueError(f"Unknown save mode: {save_mode}")

    def histograms(self):
        """All histograms in output order."""
        for kinds in (IMAGE_ORDER[:3], IMAGE_ORDER[3:]):
            for kind in kinds:
                yield self.geometric[kind]
            for kind in kinds:
                yield self.pmtwise[kind]
        yield self.h_time
        yield self.h_charge


def accumulate_pmt_responses(mc_hits, geom, h_time, h_charge, data_mode=config.DATA_MODE,
                             time_window=config.TIME_WINDOW_NS, verbose=False):
    """
    Sum in-window charge and time per hit tank PMT, keyed by detector key.

    Every hit time fills h_time; every hit PMT fills h_charge with its
    in-window charge. OD PMTs are ignored.
    """
    t_min, t_max = time_window
    responses = {}
    for chankey, hits in mc_hits.items():
        detector = geom.channel_to_detector(chankey)
        if detector is None or detector.element != config.TANK_DETECTOR_ELEMENT:
            continue
        if detector.tank_location == config.OD_LOCATION:
            continue
        response = PMTResponse()
        for hit in hits:
            if verbose:
                print(f"CNNImage: time: {hit.time}, charge: {hit.charge}")
            if not t_min < hit.time < t_max:
                continue
            # first in-window hit in digit order
            if response.nhits == 0:
                response.first_time = hit.time
            response.charge += hit.charge
            if data_mode == NORMAL:
                response.time += hit.time
            else:
                response.time += hit.time * hit.charge
            response.nhits += 1
        if hits:
            h_time.fill([hit.time for hit in hits])
        h_charge.fill([response.charge])
        if data_mode == NORMAL and response.nhits > 0:
            response.time /= response.nhits
        elif data_mode == CHARGE_WEIGHTED and response.charge > 0.:
            response.time /= response.charge
        responses[detector.key] = response
    return responses


def find_extrema(responses):
    """Charge and time extrema over the hit PMTs, with guards against empty ranges."""
    max_charge = 0.
    min_time, max_time = 999999., -999999.
    min_first, max_first = 9999999., -999999.
    for response in responses.values():
        max_charge = max(max_charge, response.charge)
        min_time = min(min_time, response.time)
        max_time = max(max_time, response.time)
        min_first = min(min_first, response.first_time)
        max_first = max(max_first, response.first_time)

    if abs(max_time - min_time) < 0.01:
        max_time = min_time + 1
    if max_charge < 0.001:
        max_charge = 1.
    if abs(max_first - min_first) < 0.01:
        max_first = min_first + 1
    return Extrema(max_charge, min_time, max_time, min_first, max_first)


class CNNImageBuilder:
    """Builds the geometric and PMT-wise images of one event."""

    def __init__(self, geom, layout, data_mode=config.DATA_MODE,
                 dimension_x=config.DIMENSION_X, dimension_y=config.DIMENSION_Y):
        if data_mode not in DATA_MODES:
            raise ValueError(f"Unknown data mode: {data_mode}. Options: {', '.join(DATA_MODES)}")
        self.geom = geom
        self.layout = layout
        self.data_mode = data_mode
        self.dimension_x = dimension_x
        self.dimension_y = dimension_y
        size = layout.size
        half_height = (0.45 * layout.tank_height / layout.tank_radius + 2) * size
        self.geometric_xrange = (0.5 - np.pi * size, 0.5 + np.pi * size)
        self.geometric_yrange = (0.5 - half_height, 0.5 + half_height)
        # bins of every PMT, fixed for the whole run
        self._geometric_xy = {}
        self._cells = {}
        for detkey in layout.table.detkeys:
            self._geometric_xy[detkey] = layout.geometric_xy(layout.table.position(detkey))
            cell = layout.locate(detkey)
            if cell is None:
                continue
            if cell[0] >= layout.npmts_x or cell[1] >= layout.npmts_y:
                print(f"Warning: PMT {detkey} lies outside the PMT-wise grid "
                      f"(column {cell[0]}, row {cell[1]}). It will not be drawn.")
                continue
            self._cells[detkey] = cell

    def _new_images(self, mc_event):
        geometric, pmtwise = {}, {}
        for kind, name, title, title_pmtwise in IMAGE_KINDS:
            geometric[kind] = regular_hist2d(
                f"{name}{mc_event}", f"{title}, Event {mc_event}",
                self.dimension_x, self.geometric_xrange, self.dimension_y, self.geometric_yrange)
            pmtwise[kind] = regular_hist2d(
                f"{name}_pmtwise{mc_event}", f"{title_pmtwise}, Event {mc_event}",
                self.layout.npmts_x, (0, self.layout.npmts_x),
                self.layout.npmts_y, (0, self.layout.npmts_y))
        return geometric, pmtwise

    def build(self, mc_hits, mc_event, verbose=False):
        """Accumulate the hits of an event and fill all images."""
        h_time = regular_hist1d(f"h_time{mc_event}", f"PMT hit times Event {mc_event}",
                                config.HIT_TIME_HIST['bins'], config.HIT_TIME_HIST['range'], "t [ns]")
        h_charge = regular_hist1d(f"h_charge{mc_event}", f"Total charge Event {mc_event}",
                                  config.PMT_CHARGE_HIST['bins'], config.PMT_CHARGE_HIST['range'], "charge")
        responses = accumulate_pmt_responses(mc_hits, self.geom, h_time, h_charge,
                                             self.data_mode, verbose=verbose)
        extrema = find_extrema(responses)
        if verbose:
            print(f"Max time and min time: {extrema.max_time}, {extrema.min_time}")
            print(f"Max and min first-time: {extrema.max_first_time}, {extrema.min_first_time}")

        geometric, pmtwise = self._new_images(mc_event)
        empty = PMTResponse()
        for detkey, (x, y) in self._geometric_xy.items():
            response = responses.get(detkey, empty)
            charge_fill = response.charge / extrema.max_charge
            time_fill = 0.
            first_time_fill = 0.
            if charge_fill > config.MIN_CHARGE_FILL:
                time_fill = (response.time - extrema.min_time) / (extrema.max_time - extrema.min_time)
                first_time_fill = ((response.first_time - extrema.min_first_time)
                                   / (extrema.max_first_time - extrema.min_first_time))
            values = {
                'charge': charge_fill,
                'time': time_fill,
                'firsttime': first_time_fill,
                'charge_abs': response.charge,
                'time_abs': response.time,
                'firsttime_abs': response.first_time,
            }

            binx, biny = find_bin(geometric['charge'], x, y)
            if verbose:
                print(f"Detkey: {detkey}, binx: {binx}, biny: {biny}, "
                      f"charge fill: {response.charge}, time fill: {response.time}")
            for kind, value in values.items():
                # charge piles up in shared bins, times keep the last PMT
                if kind.startswith('charge'):
                    add_bin_content(geometric[kind], binx, biny, value)
                else:
                    set_bin_content(geometric[kind], binx, biny, value)

            cell = self._cells.get(detkey)
            if cell is None:
                continue
            index_x, index_y = cell
            for kind, value in values.items():
                set_bin_content(pmtwise[kind], index_x + 1, index_y + 1, value)

        return EventImages(mc_event, geometric, pmtwise, h_time, h_charge, responses, extrema)

#!/usr/bin/env python3
"""
Projection of WCSim events onto 2D PMT images for CNN training.

Reads a WCSim output file, builds the toolchain geometry, loads the MC truth
of every event, applies the IBD-like selection and writes the charge and
time images of the selected events as CSV rows (one file per image kind)
and as histograms in a ROOT file.

Usage:
    python Projection_Atmospheric_DSNB.py <wcsim_file> [verbose]

Outputs (in OUTPUT_DIR, prefixed with OUTPUT_PREFIX):
- <prefix><input>_{charge,time,firsttime}[_abs].csv
- <prefix><input>.root
- <prefix><input>_events.csv (per-event labels, if WRITE_EVENT_SUMMARY)
"""
import sys
from dataclasses import dataclass
from pathlib import Path

import uproot
from tqdm import tqdm

import config
from cnn_images import SAVE_MODES, CNNImageBuilder, EventImages
from geometry import Position, construct_toolchain_geometry
from mctruth import UnknownTubeError, load_mc_hits, load_mc_particles, total_pe
from projection import PMTLayout, PMTTable, phi_positions_or_none
from selection import IBDSelection, find_true_vertex
from wcsim_reader import EmptyTreeError, WCSimReader
from writers import CSVImageWriter, EventDisplayPlotter, EventSummary, FileHandler, HistogramWriter


def parse_verbose(value):
    lowered = value.strip().lower()
    if lowered in ('1', 'true', 'yes'):
        return True
    if lowered in ('0', 'false', 'no'):
        return False
    raise ValueError(f"verbose must be true/false/1/0, got '{value}'")


def print_trigger(trigger, num_triggers):
    print("********************************************************")
    print(f"Evt, date {trigger.event_number} {int(trigger.date)}")
    print(f"Mode {trigger.mode}")
    print(f"Number of subevents {num_triggers}")
    print(f"Vtxvol {trigger.vtxvol}")
    print("Vtx {:f} {:f} {:f}".format(*trigger.vertex))
    print(f"Jmu {trigger.jmu}")
    print(f"Npar {trigger.npar}")
    print(f"Ntrack {trigger.ntrack}")


def print_track(track):
    print(f"Track ipnu: {track.ipnu}")
    print(f"Track parent ID: {track.parent_type}")
    for j, component in enumerate(track.direction):
        print(f"Track dir: {j} {component:f}")
    print(f"Track energy: {track.energy:f}")
    print(f"Track momentum: {track.momentum:f}")
    print(f"Track mass: {track.mass:f}")


def print_options(options):
    print("=== Detector options ===")
    for name, value in options.items():
        print(f"{name}: {value}")
    print("========================")


@dataclass
class EventResult:
    selected: bool
    counts: dict
    vertex: Position
    images: EventImages
    has_digits: bool


class EventProcessor:
    """Turns one WCSim event into MC truth, selection counts and CNN images."""

    def __init__(self, tubeid_to_channelkey, builder, allow_zero_flag=config.ALLOW_ZERO_FLAG,
                 use_smeared_digit_time=config.USE_SMEARED_DIGIT_TIME, verbose=False):
        self.tubeid_to_channelkey = tubeid_to_channelkey
        self.builder = builder
        self.allow_zero_flag = allow_zero_flag
        self.use_smeared_digit_time = use_smeared_digit_time
        self.verbose = verbose

    def process(self, event, mc_event):
        # the first trigger holds all primaries; only its digits are used
        trigger = event.triggers[0]
        if self.verbose:
            print_trigger(trigger, event.num_triggers)
            print(f"Number of tracks = {trigger.ntrack}")
            for track in trigger.tracks:
                print_track(track)

        particles, trackid_to_index = load_mc_particles(trigger, self.allow_zero_flag, self.verbose)
        if self.verbose:
            print(f"MCParticles has {len(particles)} entries")
            print(f"Ncherenkovhits {len(trigger.cherenkov_hits)}")
            print(f"Ncherenkovdigihits {len(trigger.digi_hits)}")
            print(f"Total Pe : {total_pe(trigger)}")

        mc_hits = load_mc_hits(trigger, trigger, self.tubeid_to_channelkey, trackid_to_index,
                               self.use_smeared_digit_time)

        vertex = find_true_vertex(particles, self.verbose)
        counts = IBDSelection.count_particles(particles, self.verbose)
        images = self.builder.build(mc_hits, mc_event, self.verbose)
        selected = IBDSelection.is_ibd_like(counts)
        if self.verbose:
            print(f"neutron count: {counts['NeutronCount']}, secondary neutron count: "
                  f"{counts['SecNeutronCount']}, gamma count: {counts['GammaCount']}, "
                  f"secondary gamma count: {counts['SecGammaCount']}, "
                  f"positron count: {counts['PositronCount']}")
        return EventResult(selected, counts, vertex, images, len(trigger.digi_hits) > 0)


def build_layout(geom, phi_positions_file=config.PHI_POSITIONS_FILE,
                 include_top_bottom=config.INCLUDE_TOP_BOTTOM, verbose=False):
    print("Tank Detectors loop start")
    table = PMTTable(geom)
    print(f"Loop over tank detectors finished. Max z = {table.max_z:f}, min z = {table.min_z:f}")
    phi_positions = phi_positions_or_none(phi_positions_file) if include_top_bottom else None
    layout = PMTLayout(table, geom.tank_radius, geom.tank_halfheight, phi_positions,
                       include_top_bottom=include_top_bottom)
    if verbose:
        layout.print_vectors()
    return layout


def run_projection(input_file, verbose=False, output_dir=config.OUTPUT_DIR,
                   save_mode=config.SAVE_MODE, data_mode=config.DATA_MODE,
                   phi_positions_file=config.PHI_POSITIONS_FILE):
    """
    Process every event of a WCSim file and write the CNN outputs.

    Returns a dictionary with the event, selection and trigger counts.
    Raises FileNotFoundError for a missing input, EmptyTreeError for an empty
    geometry or options tree, uproot.KeyInFileError for a file without the
    WCSim event or geometry tree and UnknownTubeError for a digit on an unknown tube.
    """
    if save_mode not in SAVE_MODES:
        raise ValueError(f"Unknown save mode: {save_mode}. Options: {', '.join(SAVE_MODES)}")

    print("=== Projection_Atmospheric_DSNB ===")
    print(f"Opening WCSim file {input_file} ... ")
    with WCSimReader(input_file) as reader:
        print("Success!")
        nevent = reader.num_events
        print(f"File has {nevent} events!")

        wcsim_geom = reader.read_geometry()
        geom, tubeid_to_channelkey, _ = construct_toolchain_geometry(wcsim_geom, verbose)
        geom.print_info()

        options = reader.read_options()
        if verbose:
            print_options(options)

        layout = build_layout(geom, phi_positions_file, verbose=verbose)
        builder = CNNImageBuilder(geom, layout, data_mode)
        processor = EventProcessor(tubeid_to_channelkey, builder, verbose=verbose)

        print("=== Configuration ===")
        print(f"Data mode: {data_mode}")
        print(f"Save mode: {save_mode}")
        print(f"Geometric image: {config.DIMENSION_X} x {config.DIMENSION_Y}")
        print(f"PMT-wise image: {layout.npmts_x} x {layout.npmts_y}")
        print(f"Hit time window: {config.TIME_WINDOW_NS} ns")
        print(f"Output directory: {output_dir}")
        print("======================")

        base = FileHandler.output_base(input_file, output_dir)
        summary = EventSummary()
        displays = EventDisplayPlotter(Path(output_dir) / config.EVENT_DISPLAY_DIR, save_mode)
        stats = {'events': 0, 'selected': 0, 'num_trig': 0, 'mc_events': 0}

        print("=== Start loop over events ===")
        with CSVImageWriter(base, save_mode) as csv_writer, \
                HistogramWriter(base.with_name(base.name + '.root')) as hist_writer:
            mc_event = 0
            for ev, event in enumerate(tqdm(reader.iterate_events(), total=nevent, desc="Events")):
                stats['events'] += 1
                if event.num_triggers == 0:
                    print(f"Warning: event {ev} has no triggers. Skipping it.")
                    continue

                result = processor.process(event, mc_event)
                if result.has_digits:
                    stats['num_trig'] += 1
                if verbose:
                    print(f"ev: {ev} dsnb_like: {result.selected}")

                csv_row = -1
                if result.selected:
                    hist_writer.write(result.images)
                    csv_row = csv_writer.rows_written
                    csv_writer.write(result.images)
                    stats['selected'] += 1
                    if config.SAVE_EVENT_DISPLAYS:
                        displays.plot(result.images)

                summary.add(ev, mc_event, result.selected, csv_row, result.counts, result.vertex,
                            result.images.total_charge, result.images.num_hit_pmts)
                mc_event += event.num_triggers

            stats['mc_events'] = mc_event

        if config.WRITE_EVENT_SUMMARY:
            summary.save(base.with_name(base.name + '_events.csv'))

    print(f"Total number of observed triggers: {stats['num_trig']}")
    print(f"Selected IBD-like events: {stats['selected']} / {stats['events']}")
    return stats


def main():
    """Entry point."""
    if len(sys.argv) not in (2, 3):
        print("Usage: python Projection_Atmospheric_DSNB.py <wcsim_file> [verbose]")
        sys.exit(1)

    input_file = Path(sys.argv[1])
    try:
        verbose = parse_verbose(sys.argv[2]) if len(sys.argv) == 3 else False
    except ValueError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    try:
        run_projection(input_file, verbose)
    except FileNotFoundError as e:
        print(f"Error, {e}")
        sys.exit(1)
    except EmptyTreeError as e:
        print(f"ERROR: {e}")
        sys.exit(9)
    except uproot.KeyInFileError as e:
        print(f"ERROR: tree or branch not found in {input_file}: {e}")
        sys.exit(1)
    except UnknownTubeError as e:
        print(f"LoadWCSim ERROR: {e}")
        sys.exit(1)

    print("Finished")


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Output writers for the CNN images.

- CSVImageWriter: six CSV files, one row per selected event
- HistogramWriter: all histograms of a selected event into one ROOT file
- EventSummary: one table row per processed event, saved with pandas
- EventDisplayPlotter: optional PNG displays of the charge and time images
"""
from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import uproot

import config
from cnn_images import IMAGE_ORDER, image_row


class FileHandler:
    """Handles file I/O operations."""

    @staticmethod
    def ensure_dir(path: Path):
        path.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def output_base(input_file, output_dir=config.OUTPUT_DIR, prefix=config.OUTPUT_PREFIX):
        """Output path stem: <output_dir>/<prefix><input file name>."""
        return Path(output_dir) / f"{prefix}{Path(input_file).name}"


class CSVImageWriter:
    """Writes one comma separated row per image kind and selected event."""

    SUFFIXES = {
        'charge': '_charge',
        'time': '_time',
        'firsttime': '_firsttime',
        'charge_abs': '_charge_abs',
        'time_abs': '_time_abs',
        'firsttime_abs': '_firsttime_abs',
    }

    def __init__(self, base, save_mode=config.SAVE_MODE, float_format=config.CSV_FLOAT_FORMAT):
        self.base = Path(base)
        self.save_mode = save_mode
        self.float_format = float_format
        self.paths = {kind: self.path_for(kind) for kind in IMAGE_ORDER}
        FileHandler.ensure_dir(self.base.parent)
        self._files = {kind: path.open('w') for kind, path in self.paths.items()}
        self.rows_written = 0

    def path_for(self, kind):
        return self.base.with_name(self.base.name + self.SUFFIXES[kind] + '.csv')

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def write(self, event_images):
        images = event_images.images(self.save_mode)
        for kind in IMAGE_ORDER:
            row = image_row(images[kind])
            np.savetxt(self._files[kind], row[np.newaxis, :], fmt=self.float_format, delimiter=',')
        self.rows_written += 1

    def close(self):
        for handle in self._files.values():
            handle.close()


class HistogramWriter:
    """Stores histograms in a ROOT file, recreated on open. Titles and flow bins are kept."""

    def __init__(self, path):
        self.path = Path(path)
        FileHandler.ensure_dir(self.path.parent)
        self.file = uproot.recreate(self.path)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def write(self, event_images):
        for h in event_images.histograms():
            self.file[h.name] = h

    def close(self):
        self.file.close()


class EventSummary:
    """Collects per-event labels and statistics next to the image rows."""

    COLUMNS = ['event', 'mc_event', 'selected', 'csv_row',
               'NeutronCount', 'SecNeutronCount', 'PositronCount', 'GammaCount', 'SecGammaCount',
               'true_vtx_x', 'true_vtx_y', 'true_vtx_z', 'total_charge', 'hit_pmts']

    def __init__(self):
        self.rows = []

    def add(self, event, mc_event, selected, csv_row, counts, vertex, total_charge, hit_pmts):
        row = {'event': event, 'mc_event': mc_event, 'selected': selected, 'csv_row': csv_row}
        row.update(counts)
        row.update({'true_vtx_x': vertex.x, 'true_vtx_y': vertex.y, 'true_vtx_z': vertex.z,
                    'total_charge': total_charge, 'hit_pmts': hit_pmts})
        self.rows.append(row)

    def to_dataframe(self):
        return pd.DataFrame(self.rows, columns=self.COLUMNS)

    def save(self, path):
        path = Path(path)
        FileHandler.ensure_dir(path.parent)
        df = self.to_dataframe()
        df.to_csv(path, index=False)
        print(f"Saved event summary ({len(df)} events) to {path}")
        return df


class EventDisplayPlotter:
    """Draws the charge, time and first-time images of an event side by side."""

    def __init__(self, output_dir, save_mode=config.SAVE_MODE, max_displays=config.MAX_EVENT_DISPLAYS):
        self.output_dir = Path(output_dir)
        self.save_mode = save_mode
        self.max_displays = max_displays
        self.saved = 0

    def plot(self, event_images, figsize=(18, 5)):
        """Save one PNG for the event, until max_displays are written. Returns the path or None."""
        if self.saved >= self.max_displays:
            return None
        FileHandler.ensure_dir(self.output_dir)
        images = event_images.images(self.save_mode)

        fig, axes = plt.subplots(1, 3, figsize=figsize)
        for ax, kind, label in zip(axes, ('charge', 'time', 'firsttime'),
                                   ('Normalized charge', 'Normalized time', 'Normalized first time')):
            h = images[kind]
            mesh = ax.pcolormesh(h.axes[0].edges, h.axes[1].edges, h.values().T,
                                 cmap='viridis', shading='flat')
            fig.colorbar(mesh, ax=ax, label=label)
            ax.set_title(h.title)
            ax.set_xlabel('x')
            ax.set_ylabel('y')
        fig.tight_layout()

        img_path = self.output_dir / f"event_display_{self.save_mode}_{event_images.mc_event}.png"
        fig.savefig(img_path)
        plt.close(fig)
        self.saved += 1
        return img_path

"""
ABX Data Saver Module
=====================

Handles saving the reconstructed packet set to JSON and CSV files.

Output File Formats:

JSON (abx_exchange_data.json):
- A single JSON array, ordered by sequence
- Each element: {"symbol", "side", "quantity", "price", "sequence"}

CSV (abx_exchange_data.csv, optional):
- Header row with column names
- One packet per row, ordered by sequence
"""

import csv
import json
import logging
from pathlib import Path
from typing import List

from .decoder import Packet

logger = logging.getLogger(__name__)

CSV_FIELDS = ['symbol', 'side', 'quantity', 'price', 'sequence']


class DataSaver:
    """
    Saves the ordered packet set to JSON and CSV files.

    Features:
    - Automatic output directory creation
    - Files are overwritten (one artifact per session)
    - Statistics tracking (files saved, packets written, errors)
    """

    def __init__(self, output_dir: str = '.', json_file: str = 'abx_exchange_data.json',
                 csv_file: str = 'abx_exchange_data.csv'):
        """
        Initialize data saver with output locations.

        Args:
            output_dir: Directory for output files (default: current directory)
            json_file: JSON artifact file name
            csv_file: CSV artifact file name
        """
        self.output_dir = Path(output_dir)
        self.json_path = self.output_dir / json_file
        self.csv_path = self.output_dir / csv_file

        self.stats = {
            'json_files_saved': 0,
            'csv_files_saved': 0,
            'packets_written_json': 0,
            'packets_written_csv': 0,
            'io_errors': 0
        }

        logger.debug(f"DataSaver initialized - JSON: {self.json_path}, CSV: {self.csv_path}")

    def _create_directory(self) -> bool:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            return True
        except OSError as e:
            logger.error(f"Error creating output directory {self.output_dir}: {e}", exc_info=True)
            self.stats['io_errors'] += 1
            return False

    def save_to_json(self, packets: List[Packet]) -> bool:
        """
        Save packets as one JSON array.

        Output format:
        [{"symbol": "MSFT", "side": "B", "quantity": 50, "price": 100, "sequence": 1}, ...]

        An empty packet list writes an empty array.

        Returns:
            True if save successful, False if error occurred
        """
        if not self._create_directory():
            return False

        try:
            with open(self.json_path, 'w', encoding='utf-8') as f:
                json.dump([packet.to_dict() for packet in packets], f, indent=4)
                f.write('\n')

            self.stats['json_files_saved'] += 1
            self.stats['packets_written_json'] += len(packets)
            logger.info(f"Saved {len(packets)} packets to JSON: {self.json_path}")
            return True

        except OSError as e:
            logger.error(f"Error saving to JSON {self.json_path}: {e}", exc_info=True)
            self.stats['io_errors'] += 1
            return False

    def save_to_csv(self, packets: List[Packet]) -> bool:
        """
        Save packets to a CSV file with a header row.

        Returns:
            True if save successful, False if error occurred
        """
        if not self._create_directory():
            return False

        try:
            with open(self.csv_path, 'w', newline='', encoding='utf-8') as f:
                writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
                writer.writeheader()
                for packet in packets:
                    writer.writerow(packet.to_dict())

            self.stats['csv_files_saved'] += 1
            self.stats['packets_written_csv'] += len(packets)
            logger.info(f"Saved {len(packets)} packets to CSV: {self.csv_path}")
            return True

        except OSError as e:
            logger.error(f"Error saving to CSV {self.csv_path}: {e}", exc_info=True)
            self.stats['io_errors'] += 1
            return False

    def save_packets(self, packets: List[Packet], save_json: bool = True, save_csv: bool = False) -> bool:
        """
        Save packets to JSON and/or CSV (convenience method).

        Returns:
            True if all enabled saves successful, False if any failed
        """
        success = True

        if save_json:
            if not self.save_to_json(packets):
                success = False

        if save_csv:
            if not self.save_to_csv(packets):
                success = False

        return success

    def get_stats(self) -> dict:
        """Get saver statistics."""
        return self.stats.copy()


def create_saver(config: dict) -> DataSaver:
    """Factory function to create a DataSaver from the 'output' config section."""
    output_config = config.get('output', {})

    return DataSaver(
        output_dir=output_config.get('dir', '.'),
        json_file=output_config.get('json_file', 'abx_exchange_data.json'),
        csv_file=output_config.get('csv_file', 'abx_exchange_data.csv')
    )

"""Demo module for running the engine with local CSV data"""

from .csv_data_loader import DemoDataLoader, CsvDemoSource

__all__ = ['DemoDataLoader', 'CsvDemoSource']

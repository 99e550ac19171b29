from certstamp.cli import launch

launch()

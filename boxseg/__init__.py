"""BoxSeg - box-prompted mask segmentation with polygon and PNG export"""

__version__ = "0.1.0"

"""State calling and segmentation from fitted posteriors."""

from seghmm.inference.segments import call_states, extract_segments

__all__ = [
    'call_states',
    'extract_segments',
]

"""StagePass: shared karaoke stages with a polled playback queue."""

from __future__ import annotations


class TaskSubmissionError(RuntimeError):
    pass


class TaskQueryError(RuntimeError):
    pass


class AudioFetchError(RuntimeError):
    pass


class NothingPlayingError(RuntimeError):
    pass

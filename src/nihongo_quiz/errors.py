class QuizAppError(Exception):
    """Base class for every error raised by nihongo_quiz."""


class StoreError(QuizAppError):
    """The document store could not be read or written."""


class NotFoundError(QuizAppError):
    pass


class ContentValidationError(QuizAppError):
    """Admin input rejected before anything was written."""


class UploadError(QuizAppError):
    """The image host did not accept the upload."""


class QuizStateError(QuizAppError):
    """An operation was attempted in a session state that does not allow it."""


class InvalidTransition(QuizStateError):
    pass


class WrongQuestionType(QuizStateError):
    pass


class InvalidAnswer(QuizStateError):
    pass

import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///quizarena.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Room / solo defaults, used when a request omits a setting
    DEFAULT_MAX_PLAYERS = int(os.environ.get('DEFAULT_MAX_PLAYERS', '4'))
    DEFAULT_NUM_QUESTIONS = int(os.environ.get('DEFAULT_NUM_QUESTIONS', '10'))
    DEFAULT_TIME_LIMIT_SEC = int(os.environ.get('DEFAULT_TIME_LIMIT_SEC', '30'))
    # Scoring: points (and XP) per correct answer
    POINTS_PER_CORRECT = int(os.environ.get('POINTS_PER_CORRECT', '10'))
    # Pause between an answer and the next question (seconds)
    ANSWER_REVEAL_DELAY_SEC = float(os.environ.get('ANSWER_REVEAL_DELAY_SEC', '1'))
    # Grace delay before creating a profile right after signup (seconds)
    PROFILE_CREATE_DELAY_SEC = float(os.environ.get('PROFILE_CREATE_DELAY_SEC', '1'))
    # Countdown timers are off under TESTING unless this is set
    ENABLE_SCHEDULER_IN_TESTS = False

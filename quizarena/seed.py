"""Demo data for ``flask db-reset``."""

from quizarena import db, bridge
from quizarena.models import Question, User
from quizarena.services.profiles import ensure_profile

QUESTION_BANK = [
    # (category, difficulty, question, options, correct_answer)
    ('science', 'easy', 'What planet is known as the Red Planet?',
     ['Venus', 'Mars', 'Jupiter', 'Mercury'], 'Mars'),
    ('science', 'medium', 'What is the chemical symbol for gold?',
     ['Ag', 'Au', 'Gd', 'Go'], 'Au'),
    ('science', 'medium', 'Which gas makes up most of Earth\'s atmosphere?',
     ['Oxygen', 'Carbon dioxide', 'Nitrogen', 'Argon'], 'Nitrogen'),
    ('science', 'hard', 'What is the most abundant isotope of hydrogen?',
     ['Deuterium', 'Tritium', 'Protium', 'Helium-3'], 'Protium'),
    ('history', 'easy', 'In which year did World War II end?',
     ['1943', '1944', '1945', '1946'], '1945'),
    ('history', 'medium', 'Who was the first emperor of Rome?',
     ['Julius Caesar', 'Augustus', 'Nero', 'Tiberius'], 'Augustus'),
    ('history', 'medium', 'The Magna Carta was sealed in which year?',
     ['1066', '1215', '1492', '1603'], '1215'),
    ('history', 'hard', 'Which treaty ended the Thirty Years\' War?',
     ['Treaty of Utrecht', 'Peace of Westphalia', 'Treaty of Paris', 'Treaty of Versailles'],
     'Peace of Westphalia'),
    ('geography', 'easy', 'What is the capital of France?',
     ['Berlin', 'Madrid', 'Paris', 'Rome'], 'Paris'),
    ('geography', 'medium', 'Which is the longest river in South America?',
     ['Orinoco', 'Amazon', 'Parana', 'Magdalena'], 'Amazon'),
    ('geography', 'medium', 'Mount Kilimanjaro is in which country?',
     ['Kenya', 'Uganda', 'Tanzania', 'Ethiopia'], 'Tanzania'),
    ('geography', 'hard', 'What is the capital of Bhutan?',
     ['Paro', 'Thimphu', 'Punakha', 'Kathmandu'], 'Thimphu'),
    ('entertainment', 'easy', 'Which studio made "Toy Story"?',
     ['DreamWorks', 'Pixar', 'Illumination', 'Laika'], 'Pixar'),
    ('entertainment', 'medium', 'Who composed the score for "Jaws"?',
     ['Hans Zimmer', 'John Williams', 'Ennio Morricone', 'Howard Shore'], 'John Williams'),
    ('sports', 'easy', 'How many players are on a soccer team on the field?',
     ['9', '10', '11', '12'], '11'),
    ('sports', 'medium', 'Which country won the first FIFA World Cup?',
     ['Brazil', 'Italy', 'Uruguay', 'Argentina'], 'Uruguay'),
    ('sports', 'hard', 'In which year were the first modern Olympic Games held?',
     ['1892', '1896', '1900', '1904'], '1896'),
]


def seed_questions(bank=None):
    created = []
    for category, difficulty, text, options, answer in (bank or QUESTION_BANK):
        if answer not in options:
            raise ValueError(f"Correct answer '{answer}' not among options for: {text}")
        question = Question(question=text, options=options, correct_answer=answer,
                            category=category, difficulty=difficulty)
        db.session.add(question)
        created.append(question)
    db.session.commit()
    return created


def seed_users(usernames, password):
    created = []
    for name in usernames:
        user = User(username=name)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        ensure_profile(bridge, user.id, name, delay=0).unwrap()
        created.append(user)
    return created

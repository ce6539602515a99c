from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker

from backend.core.errors import ConflictError, DuplicateError, UnavailableError
from backend.database import build_engine, init_db
from backend.domain import ROLE_USER, SORT_LATEST, SORT_UPVOTES, QuestionFilter
from backend.models.question import Question, QuestionUpvote
from backend.models.user import User
from backend.repositories.sql import SqlQuestionRepository, SqlUserRepository, escape_like


@pytest.fixture
def users(db_session) -> SqlUserRepository:
    return SqlUserRepository(db_session)


@pytest.fixture
def questions(db_session) -> SqlQuestionRepository:
    return SqlQuestionRepository(db_session, retry_limit=3)


@pytest.fixture
def voters(users):
    return [users.add(f'Voter {index}', f'voter{index}@example.com', 'hash', ROLE_USER) for index in range(4)]


def _add_question(questions: SqlQuestionRepository, submitted_by: int | None = None, **overrides):
    fields = {
        'question_text': 'Explain the event loop in Node.js',
        'company': 'Amazon',
        'topic': 'JavaScript',
        'role': 'SDE',
        'difficulty': 'Medium',
    }
    fields.update(overrides)
    return questions.add(submitted_by=submitted_by, **fields)


def _stored_vote_count(db_session, question_id: int) -> int:
    return db_session.scalar(
        select(func.count()).select_from(QuestionUpvote).where(QuestionUpvote.question_id == question_id)
    )


def test_user_round_trip_by_id_and_email(users) -> None:
    created = users.add('Alice', 'alice@example.com', 'hash', ROLE_USER)

    assert users.get(created.id) == created
    assert users.find_by_email('alice@example.com') == created
    assert users.find_by_email('missing@example.com') is None


def test_duplicate_email_collapses_to_duplicate_error(users) -> None:
    users.add('Alice', 'alice@example.com', 'hash', ROLE_USER)

    with pytest.raises(DuplicateError):
        users.add('Alice Again', 'alice@example.com', 'hash', ROLE_USER)


def test_question_keeps_submitter_name(questions, voters) -> None:
    question = _add_question(questions, submitted_by=voters[0].id)

    assert question.submitted_by == voters[0].id
    assert question.submitter_name == 'Voter 0'
    assert question.created_at is not None


def test_toggle_keeps_counter_and_vote_rows_in_step(db_session, questions, voters) -> None:
    question = _add_question(questions)
    sequence = [voters[0], voters[1], voters[0], voters[2], voters[3], voters[1], voters[2]]

    for voter in sequence:
        result = questions.toggle_upvote(question.id, voter.id)
        assert result.question.upvotes == len(result.question.upvoted_by)
        assert result.question.upvotes == _stored_vote_count(db_session, question.id)

    assert questions.get(question.id).upvoted_by == frozenset({voters[3].id})


def test_toggle_reports_direction(questions, voters) -> None:
    question = _add_question(questions)

    assert questions.toggle_upvote(question.id, voters[0].id).was_added is True
    assert questions.toggle_upvote(question.id, voters[0].id).was_added is False


def test_toggle_on_missing_question_returns_none(questions, voters) -> None:
    assert questions.toggle_upvote(12345, voters[0].id) is None


def test_toggle_retries_after_concurrent_insert(monkeypatch, questions, voters) -> None:
    question = _add_question(questions)
    real_toggle = questions._toggle_once
    calls = {'count': 0}

    def flaky_toggle(question_id, user_id):
        calls['count'] += 1
        if calls['count'] == 1:
            raise IntegrityError('INSERT INTO question_upvotes', {}, Exception('UNIQUE constraint failed'))
        return real_toggle(question_id, user_id)

    monkeypatch.setattr(questions, '_toggle_once', flaky_toggle)

    result = questions.toggle_upvote(question.id, voters[0].id)

    assert calls['count'] == 2
    assert result.was_added is True
    assert result.question.upvotes == 1


def test_toggle_gives_up_with_conflict_after_retry_budget(monkeypatch, questions, voters) -> None:
    question = _add_question(questions)

    def always_racing(question_id, user_id):
        raise IntegrityError('INSERT INTO question_upvotes', {}, Exception('UNIQUE constraint failed'))

    monkeypatch.setattr(questions, '_toggle_once', always_racing)

    with pytest.raises(ConflictError) as exception_info:
        questions.toggle_upvote(question.id, voters[0].id)

    assert exception_info.value.status_code == 409


def test_store_failure_surfaces_as_unavailable(monkeypatch, questions, voters) -> None:
    question = _add_question(questions)

    def broken(question_id, user_id):
        raise OperationalError('SELECT', {}, Exception('database is locked'))

    monkeypatch.setattr(questions, '_toggle_once', broken)

    with pytest.raises(UnavailableError):
        questions.toggle_upvote(question.id, voters[0].id)


def test_delete_removes_question_and_its_votes(db_session, questions, voters) -> None:
    question = _add_question(questions)
    questions.toggle_upvote(question.id, voters[0].id)

    assert questions.delete(question.id) is True
    assert questions.get(question.id) is None
    assert _stored_vote_count(db_session, question.id) == 0
    assert questions.delete(question.id) is False


def test_update_applies_fields(questions) -> None:
    question = _add_question(questions)

    updated = questions.update(question.id, {'topic': 'Node.js', 'difficulty': 'Hard'})

    assert (updated.topic, updated.difficulty, updated.company) == ('Node.js', 'Hard', 'Amazon')
    assert questions.update(999, {'topic': 'Node.js'}) is None


def test_query_filters_sorts_and_counts(db_session, questions, voters) -> None:
    first = _add_question(questions, company='Amazon')
    second = _add_question(questions, company='Amazon')
    _add_question(questions, company='Google')
    questions.toggle_upvote(first.id, voters[0].id)
    questions.toggle_upvote(first.id, voters[1].id)
    questions.toggle_upvote(second.id, voters[0].id)

    items, total = questions.query(QuestionFilter(company='Amazon'), SORT_UPVOTES, offset=0, limit=1)

    assert total == 2
    assert [item.id for item in items] == [first.id]


def test_query_applies_inclusive_date_range(db_session, questions) -> None:
    old = _add_question(questions)
    inside = _add_question(questions)
    edge = _add_question(questions)
    for question_id, created in (
        (old.id, datetime(2024, 1, 1, 12, 0)),
        (inside.id, datetime(2024, 2, 10, 9, 30)),
        (edge.id, datetime(2024, 2, 29, 23, 0)),
    ):
        db_session.execute(update(Question).where(Question.id == question_id).values(created_at=created))
    db_session.commit()

    spec = QuestionFilter(created_from=datetime(2024, 2, 1), created_to=datetime(2024, 2, 29, 23, 59, 59))
    items, total = questions.query(spec, SORT_LATEST, offset=0, limit=10)

    assert total == 2
    assert [item.id for item in items] == [edge.id, inside.id]


def test_search_treats_wildcards_literally(questions) -> None:
    literal = _add_question(questions, question_text='What does 100% test coverage guarantee?')
    _add_question(questions, question_text='What does 100 percent uptime guarantee?')

    results = questions.search('100%')

    assert [question.id for question in results] == [literal.id]


def test_search_is_case_insensitive_across_fields(questions) -> None:
    by_company = _add_question(questions, company='Microsoft', topic='Cloud')
    by_topic = _add_question(questions, company='Amazon', topic='Microservices')
    _add_question(questions, company='Amazon', topic='Arrays')

    results = questions.search('MICRO')

    assert {question.id for question in results} == {by_company.id, by_topic.id}


def test_escape_like_escapes_special_characters() -> None:
    assert escape_like('50%_off\\') == '50\\%\\_off\\\\'


def test_distinct_lists_sorted_values(questions) -> None:
    _add_question(questions, topic='Graphs')
    _add_question(questions, topic='Arrays')
    _add_question(questions, topic='Graphs')

    assert questions.distinct('topic') == ['Arrays', 'Graphs']

    with pytest.raises(ValueError):
        questions.distinct('question_text')


def test_user_with_votes_cannot_be_deleted_under_the_counter(db_session, questions, voters) -> None:
    question = _add_question(questions)
    questions.toggle_upvote(question.id, voters[0].id)

    with pytest.raises(IntegrityError):
        db_session.execute(delete(User).where(User.id == voters[0].id))
        db_session.commit()
    db_session.rollback()

    assert questions.get(question.id).upvotes == _stored_vote_count(db_session, question.id) == 1


@pytest.fixture
def file_engine(tmp_path):
    database_path = tmp_path / 'votes.db'
    test_engine = build_engine(
        f'sqlite:///{database_path}',
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    init_db(test_engine)
    try:
        yield test_engine
    finally:
        test_engine.dispose()


def test_concurrent_toggles_do_not_lose_updates(file_engine) -> None:
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    with session_factory() as setup:
        users = SqlUserRepository(setup)
        voter_ids = [users.add(f'Voter {index}', f'voter{index}@example.com', 'hash', ROLE_USER).id for index in range(16)]
        repeat_voter_id = users.add('Repeat Voter', 'repeat@example.com', 'hash', ROLE_USER).id
        question_id = _add_question(SqlQuestionRepository(setup)).id

    # Every distinct voter toggles three times (ends voted); the repeat voter toggles eight times (ends not voted).
    jobs = [voter_id for voter_id in voter_ids for _ in range(3)] + [repeat_voter_id] * 8

    def toggle(user_id: int) -> None:
        with session_factory() as db:
            SqlQuestionRepository(db, retry_limit=10).toggle_upvote(question_id, user_id)

    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [pool.submit(toggle, user_id) for user_id in jobs]
    errors = [future.exception() for future in futures if future.exception() is not None]

    with session_factory() as db:
        stored = SqlQuestionRepository(db).get(question_id)
        vote_rows = _stored_vote_count(db, question_id)

    assert errors == []
    assert stored.upvotes == vote_rows == len(voter_ids)
    assert stored.upvoted_by == frozenset(voter_ids)

import numpy as np
import pytest

from errors import DataError
from features import AgeScaler, encode_covariates, outcome_array, split_train_validation
from tests.factories import make_record


@pytest.fixture
def records():
    return tuple(
        make_record(i, "female" if i % 2 else "male", i % 3 + 1, float(20 + i), survived=i % 2)
        for i in range(1, 21)
    )


def test_split_is_reproducible_and_disjoint(records):
    train, validation = split_train_validation(records, 0.25, seed=3)
    again = split_train_validation(records, 0.25, seed=3)
    assert (train, validation) == again
    assert len(validation) == 5
    ids = [r.passenger_id for r in train + validation]
    assert sorted(ids) == list(range(1, 21))


def test_split_needs_two_records():
    with pytest.raises(DataError):
        split_train_validation([make_record(1, age=3.0)])


def test_encode_uses_train_scaler(records):
    covariates, scaler = encode_covariates(records)
    assert scaler.mean == pytest.approx(30.5)
    assert covariates.age.mean() == pytest.approx(0.0)
    assert covariates.sex.tolist()[:2] == [1, 0]
    assert covariates.pclass.tolist()[:3] == [2, 3, 1]

    test, same = encode_covariates([make_record(99, "male", 2, 30.5)], scaler=scaler)
    assert same is scaler
    assert test.age.tolist() == [pytest.approx(0.0)]


def test_encode_requires_imputed_ages():
    with pytest.raises(DataError, match="impute"):
        encode_covariates([make_record(1, age=None)])


def test_unfitted_scaler():
    with pytest.raises(DataError):
        AgeScaler().transform([1.0])


def test_outcome_array(records):
    assert outcome_array(records[:4]).tolist() == [1, 0, 1, 0]
    with pytest.raises(DataError):
        outcome_array([make_record(1, age=2.0)])
    assert outcome_array(records).dtype == np.int64

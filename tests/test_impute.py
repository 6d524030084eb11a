import pytest

from errors import ImputationExhaustedError
from impute import extract_title, impute
from tests.factories import make_record


def test_group_mean_of_same_sex_and_class():
    records = [
        make_record(1, "female", 1, None),
        make_record(2, "female", 1, 30.0),
        make_record(3, "female", 1, 40.0),
    ]
    result = impute(records)
    assert result[0].age == 35.0


def test_fallback_chain(mixed_records):
    result = {r.passenger_id: r.age for r in impute(mixed_records)}
    assert result[2] == 35.0   # female / 1 等舱
    assert result[5] == 22.0   # male / 3 等舱
    assert result[6] == 38.0   # 没有 2 等舱男性 -> 全部男性
    assert result[7] == 35.0   # 没有已知年龄的 3 等舱女性 -> 全部女性


def test_falls_back_to_global_statistic():
    records = [make_record(1, "male", 2, None), make_record(2, "female", 1, 20.0)]
    assert impute(records)[0].age == 20.0


def test_present_ages_are_unchanged(mixed_records):
    result = impute(mixed_records)
    for before, after in zip(mixed_records, result):
        if before.age is not None:
            assert after is before
        else:
            assert after.passenger_id == before.passenger_id
            assert after.name == before.name
            assert after.sex == before.sex
            assert after.pclass == before.pclass
            assert after.survived == before.survived


def test_no_missing_ages_and_input_not_mutated(mixed_records):
    snapshot = [r.age for r in mixed_records]
    result = impute(mixed_records)
    assert all(r.age is not None and r.age >= 0 for r in result)
    assert [r.age for r in mixed_records] == snapshot


def test_deterministic_and_idempotent(mixed_records):
    first = impute(mixed_records)
    assert impute(mixed_records) == first
    assert impute(first) == first


def test_mapping_input_keeps_keys(mixed_records):
    by_id = {r.passenger_id: r for r in reversed(mixed_records)}
    result = impute(by_id)
    assert isinstance(result, dict)
    assert list(result) == list(by_id)
    assert result[2].age == 35.0


def test_reference_statistics_are_used():
    train = [make_record(1, "male", 3, 20.0), make_record(2, "male", 3, 30.0)]
    test = [make_record(10, "male", 3, None), make_record(11, "male", 3, 70.0)]
    assert impute(test, reference=train)[0].age == 25.0
    assert impute(test)[0].age == 70.0


def test_median_statistic():
    records = [
        make_record(1, "female", 1, None),
        make_record(2, "female", 1, 10.0),
        make_record(3, "female", 1, 20.0),
        make_record(4, "female", 1, 60.0),
    ]
    assert impute(records, statistic="median")[0].age == 20.0


def test_all_missing_without_default_raises():
    records = [make_record(1, "female", 1, None), make_record(2, "male", 3, None)]
    with pytest.raises(ImputationExhaustedError):
        impute(records)


def test_all_missing_uses_default():
    records = [make_record(1, "female", 1, None), make_record(2, "male", 3, None)]
    assert [r.age for r in impute(records, default_age=28)] == [28.0, 28.0]


def test_title_policy():
    records = [
        make_record(1, "male", 3, None, "Palsson, Master. Gosta Leonard"),
        make_record(2, "male", 3, 4.0, "Rice, Master. Eugene"),
        make_record(3, "male", 3, 40.0, "Braund, Mr. Owen Harris"),
    ]
    assert impute(records, policy="title")[0].age == 4.0
    assert impute(records)[0].age == 22.0


@pytest.mark.parametrize("name, title", [
    ("Braund, Mr. Owen Harris", "Mr"),
    ("Heikkinen, Miss. Laina", "Miss"),
    ("Aubart, Mme. Leontine Pauline", "Mrs"),
    ("Sagesser, Mlle. Emma", "Miss"),
    ("Byles, Rev. Thomas Roussel Davids", "Officer"),
    ("Rothes, the Countess. of (Lucy Noel Martha Dyer-Edwards)", "Royalty"),
    ("Oliva y Ocana, Dona. Fermina", "Royalty"),
    ("", "Unknown"),
])
def test_extract_title(name, title):
    assert extract_title(name) == title


def test_unknown_policy():
    with pytest.raises(ValueError):
        impute([], policy="knn")

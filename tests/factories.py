from records import PassengerRecord


def make_record(passenger_id, sex="female", pclass=1, age=None, name="", survived=None):
    return PassengerRecord(
        passenger_id=passenger_id, pclass=pclass, sex=sex, age=age, name=name, survived=survived
    )

"""Tests for ModelArray: membership, ordering, lookup and event re-emission."""
import pytest

from modelstate import Model, ModelArray


def ids(array):
    return [model.id for model in array]


@pytest.fixture
def array():
    return ModelArray([
        {'_id': 1, 'name': 'Arthur', 'order': 3},
        {'_id': 2, 'name': 'Ford', 'order': 1},
        {'_id': 3, 'name': 'Trillian', 'order': 2},
    ])


class TestConstruction:

    def test_mappings_become_models(self, array):
        assert len(array) == 3
        assert all(isinstance(model, Model) for model in array)
        assert array[0].name == 'Arthur'
        assert array[0].collection is array

    def test_model_class(self):
        class Person(Model):
            comparator = 'name'

        people = ModelArray([{'name': 'Ford'}, {'name': 'Arthur'}], model=Person)
        assert all(isinstance(model, Person) for model in people)
        assert people.comparator == 'name'
        assert [model.name for model in people] == ['Arthur', 'Ford']

    def test_models_are_kept_as_is(self):
        model = Model({'_id': 1})
        array = ModelArray([model])
        assert array[0] is model

    def test_non_model_items_are_ignored(self):
        array = ModelArray([{'_id': 1}, 42, None])
        assert ids(array) == [1]

    def test_to_json(self, array):
        assert array.to_json()[1] == {'_id': 2, 'name': 'Ford', 'order': 1}

    def test_repr(self):
        assert repr(ModelArray([{'_id': 1}])) == "ModelArray([{'_id': 1}])"


class TestSet:

    def test_set_replaces_contents(self, array, spy):
        first, third = array[0], array[2]
        array.on('remove', spy)
        updates = []
        array.on('update', updates.append)
        array.set([{'_id': 2}, {'_id': 4}])
        assert ids(array) == [2, 4]
        assert [event.emitter for event in spy.events] == [first, third]
        assert first.collection is None
        assert len(updates) == 1

    def test_existing_element_is_updated_in_place(self):
        array = ModelArray()
        array.set({'_id': 1, 'name': 'Ford'})
        first = array.get(1)
        array.set({'_id': 1, 'name': 'Arthur'}, keep=True)
        assert len(array) == 1
        assert array.get(1) is first
        assert array.get(1).name == 'Arthur'

    def test_keep_preserves_other_elements(self, array):
        array.set({'_id': 4}, keep=True)
        assert ids(array) == [1, 2, 3, 4]

    def test_duplicate_ids_in_one_batch(self):
        array = ModelArray([{'_id': 1, 'value': 'a'}, {'_id': 1, 'value': 'b'}])
        assert len(array) == 1
        assert array[0].value == 'b'

    def test_model_with_existing_id_merges(self, array):
        array.set(Model({'_id': 1, 'name': 'Dent'}), keep=True)
        assert len(array) == 3
        assert array.get(1).name == 'Dent'

    def test_insert_at_position(self, array):
        array.set({'_id': 9}, keep=True, at=1)
        assert ids(array) == [1, 9, 2, 3]

    def test_add_events(self, array, spy):
        array.on('add', spy)
        array.set([{'_id': 4}, {'_id': 5}], keep=True, at=0)
        assert spy.call_count == 2
        assert [event.detail['at'] for event in spy.events] == [0, 1]
        assert spy.last.detail['array'] is array
        assert spy.last.emitter is array[1]

    def test_update_event_only_on_membership_change(self, array, spy):
        array.on('update', spy)
        array.set({'_id': 1, 'name': 'Dent'}, keep=True)
        assert not spy.called
        array.set({'_id': 4}, keep=True)
        assert spy.call_count == 1

    def test_skip_suppresses_events(self, array, spy):
        for event_type in ('add', 'remove', 'update', 'sort'):
            array.on(event_type, spy)
        array.set([{'_id': 4}], skip=True)
        assert ids(array) == [4]
        assert not spy.called


class TestSorting:

    def test_push_sorts_once(self, spy):
        array = ModelArray(comparator='order')
        array.on('sort', spy)
        array.push({'order': 3}, {'order': 2}, {'order': 1})
        assert [model.order for model in array] == [1, 2, 3]
        assert spy.call_count == 1

    def test_no_sort_event_when_order_is_unchanged(self, spy):
        array = ModelArray(comparator='order')
        array.on('sort', spy)
        array.push({'order': 1}, {'order': 2})
        assert not spy.called

    def test_update_of_comparator_field_resorts(self, spy):
        array = ModelArray([{'_id': 1, 'order': 1}, {'_id': 2, 'order': 2}], comparator='order')
        array.on('sort', spy)
        array.set({'_id': 1, 'name': 'Arthur'}, keep=True)
        assert not spy.called
        array.set({'_id': 1, 'order': 3}, keep=True)
        assert ids(array) == [2, 1]
        assert spy.call_count == 1

    def test_unsorted_and_at_skip_sorting(self):
        array = ModelArray([{'order': 1}, {'order': 2}], comparator='order')
        array.set({'order': 0}, keep=True, unsorted=True)
        assert [model.order for model in array] == [1, 2, 0]
        array.set({'order': 5}, keep=True, at=0)
        assert [model.order for model in array] == [5, 1, 2, 0]

    def test_sort_by_field(self, array, spy):
        array.on('sort', spy)
        array.sort('order')
        assert ids(array) == [2, 3, 1]
        array.sort('order', descending=True)
        assert ids(array) == [1, 3, 2]
        assert spy.call_count == 2

    def test_missing_values_sort_last(self):
        array = ModelArray([{'_id': 1}, {'_id': 2, 'order': 2}, {'_id': 3, 'order': 1}])
        array.sort('order')
        assert ids(array) == [3, 2, 1]
        array.sort('order', descending=True)
        assert ids(array) == [1, 2, 3]

    def test_mixed_value_types_still_sort(self, spy):
        array = ModelArray(comparator='order')
        array.on('add', spy)
        array.push({'order': 'a'}, {'order': 2}, {'order': 1})
        assert [model.order for model in array] == [1, 2, 'a']
        assert spy.call_count == 3
        array.sort('order', descending=True)
        assert [model.order for model in array] == ['a', 2, 1]

    def test_sort_with_function(self, array):
        array.sort(lambda a, b: len(a.name) - len(b.name))
        assert [model.name for model in array] == ['Ford', 'Arthur', 'Trillian']

    def test_function_comparator_keeps_order(self):
        array = ModelArray(comparator=lambda a, b: b.id - a.id)
        array.push({'_id': 1}, {'_id': 3}, {'_id': 2})
        assert ids(array) == [3, 2, 1]

    def test_sort_without_comparator_is_silent(self, array, spy):
        array.on('sort', spy)
        array.sort()
        assert ids(array) == [1, 2, 3]
        assert not spy.called

    def test_reverse_emits_sort(self, array, spy):
        array.on('sort', spy)
        array.reverse()
        assert ids(array) == [3, 2, 1]
        assert spy.call_count == 1


class TestRemoval:

    def test_unset_model(self, array, spy):
        model = array[1]
        array.on('remove', spy)
        array.unset(model)
        assert ids(array) == [1, 3]
        assert spy.last.detail['index'] == 1
        assert spy.last.detail['array'] is array
        assert model.collection is None

    def test_unset_by_id(self, array):
        array.unset([1, 3])
        assert ids(array) == [2]
        assert array.get(1) is None

    def test_unset_non_member_is_silent(self, array, spy):
        for event_type in ('remove', 'update'):
            array.on(event_type, spy)
        array.unset(Model({'_id': 1}))
        array.unset(42)
        assert ids(array) == [1, 2, 3]
        assert not spy.called

    def test_removed_model_events_are_not_reemitted(self, array, spy):
        model = array[0]
        array.unset(model)
        array.on('change', spy)
        model.name = 'Dent'
        assert not spy.called

    def test_pop_and_shift(self, array):
        last = array[2]
        first = array[0]
        assert array.pop() is last
        assert array.shift() is first
        assert ids(array) == [2]

    def test_pop_empty(self):
        with pytest.raises(IndexError):
            ModelArray().pop()
        with pytest.raises(IndexError):
            ModelArray().shift()

    def test_splice(self, array):
        removed = array.splice(0, 1)
        assert [model.id for model in removed] == [1]
        removed = array.splice(-1, 1, {'_id': 9}, {'_id': 8})
        assert [model.id for model in removed] == [3]
        assert ids(array) == [2, 9, 8]

    def test_splice_without_count_removes_tail(self, array):
        removed = array.splice(1)
        assert len(removed) == 2
        assert ids(array) == [1]


class TestSequenceProtocol:

    def test_append_extend_insert(self):
        array = ModelArray()
        array.append({'_id': 1})
        array.extend([{'_id': 2}, {'_id': 3}])
        array.insert(0, {'_id': 0})
        array += [{'_id': 4}]
        assert ids(array) == [0, 1, 2, 3, 4]

    def test_item_assignment_and_deletion(self, array):
        array[0] = {'_id': 7}
        assert ids(array) == [7, 2, 3]
        del array[-1]
        assert ids(array) == [7, 2]
        del array[:]
        assert len(array) == 0

    def test_item_assignment_rejects_other_members(self, array, spy):
        for event_type in ('add', 'remove', 'update'):
            array.on(event_type, spy)
        with pytest.raises(ValueError):
            array[0] = {'_id': 2, 'name': 'Zaphod'}
        with pytest.raises(ValueError):
            array[0] = array[2]
        with pytest.raises(ValueError):
            array[0] = Model({'_id': 3})
        assert ids(array) == [1, 2, 3]
        assert array.get(2).name == 'Ford'
        assert not spy.called

    def test_item_assignment_with_same_id_replaces(self, array):
        array[0] = {'_id': 1, 'name': 'Dent'}
        assert ids(array) == [1, 2, 3]
        assert array[0].name == 'Dent'

    def test_remove_and_contains(self, array):
        model = array[1]
        assert model in array
        array.remove(model)
        assert model not in array
        with pytest.raises(ValueError):
            array.remove(model)

    def test_clear_emits_one_update(self, array, spy):
        array.on('update', spy)
        array.clear()
        assert len(array) == 0
        assert spy.call_count == 1

    def test_slicing_returns_models(self, array):
        assert [model.id for model in array[1:]] == [2, 3]


class TestLookup:

    def test_get(self, array):
        assert array.get(2).name == 'Ford'
        assert array.get(42) is None

    def test_where(self, array):
        array.push({'_id': 4, 'name': 'Ford'})
        assert ids(array.where({'name': 'Ford'})) == [2, 4]
        assert array.where({'name': 'Ford'}, first=True) is array.get(2)
        assert array.where({'name': 'Marvin'}, first=True) is None

    def test_where_without_criteria(self, array):
        assert array.where() == []
        assert array.where({}, first=True) is None

    def test_where_is_strict(self):
        array = ModelArray([{'_id': 1, 'flag': 1}])
        assert array.where({'flag': True}) == []
        assert array.where({'missing': None}) == []

    def test_id_change_reindexes(self, array):
        model = array.get(1)
        model.id = 10
        assert array.get(10) is model
        assert array.get(1) is None


class TestEventReemission:

    def test_member_change_is_reemitted(self, array, spy):
        array.on('change', spy)
        array[0].name = 'Dent'
        assert spy.call_count == 1
        assert spy.last.emitter is array[0]
        assert spy.last.detail['path'] == ':name'

    def test_add_for_another_array_is_ignored(self, array, spy):
        model = array[0]
        other = ModelArray()
        array.on('add', spy)
        other.push(model)
        assert not spy.called
        assert model.collection is other

    def test_dispose_releases_members(self, array, spy):
        model = array[0]
        array.on('change', spy)
        array.dispose()
        assert len(array) == 0
        assert model.collection is None
        model.name = 'Dent'
        assert not spy.called

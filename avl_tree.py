import logging
import sys
from collections.abc import Collection, Iterable, Iterator
from typing import Callable, Optional, TextIO, cast


logger = logging.getLogger(__name__)


class RotationError(RuntimeError):
    """Raised when a rotation is requested across an edge that does not exist."""


def height(node: 'AvlTreeNode | None') -> int:
    """Return the cached height of node, or -1 if there is no node."""
    return node.height if node is not None else -1


def balance_factor(node: 'AvlTreeNode') -> int:
    """Get the balance of a node based on the cached heights of its children. A balanced node has a balance of -1, 0,
    or 1. The convention is that balance is right height - left height, so a positive balance is right heavy and a
    negative balance is left heavy.
    """
    return height(node.right) - height(node.left)


class AvlTreeNode:
    __slots__ = 'key', 'left', 'right', 'parent', 'height'

    def __init__(self, key: str, parent: 'AvlTreeNode | None' = None):
        self.key: str = key
        self.left: 'AvlTreeNode | None' = None
        self.right: 'AvlTreeNode | None' = None
        # only None for the root
        self.parent: 'AvlTreeNode | None' = parent
        # height is max child edge count for any path; 0 if no children
        self.height: int = 0

    def __str__(self):
        return f'{self.__class__.__name__}({self.key})'

    def __repr__(self):
        return str(self)

    def __iter__(self) -> Iterator['AvlTreeNode']:
        """Iterate over this node and all of its descendents, parents before children."""
        stack: list[AvlTreeNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(node.get_children())

    def get_children(self) -> tuple['AvlTreeNode', ...]:
        """Get a tuple of this node's children. May have 0, 1, or 2 elements. If it has 2 children, the returned order
        will always be (left, right).
        """
        return tuple(i for i in [self.left, self.right] if i is not None)

    def sorted(self) -> Iterator['AvlTreeNode']:
        """Return an iterator over this node and its descendents in key order."""
        stack: list[AvlTreeNode] = []
        node: 'AvlTreeNode | None' = self
        # go as far left as possible, yield, then do the same for the right subtree
        while stack or node is not None:
            while node is not None:
                stack.append(node)
                node = node.left
            node = stack.pop()
            yield node
            node = node.right

    def _get_descendent_predecessor(self) -> 'AvlTreeNode | None':
        """Get the greatest lesser node among descendents. Return the predecessor or None if there are no left children."""
        # the greatest key in the left subtree
        child = self.left
        if child is not None:
            while child.right is not None:
                child = child.right
        return child

    def _update_node_height(self):
        """Quickly update this node's height by looking at the heights of its children. Assumes child heights are valid.
        """
        self.height = 1 + max(height(self.left), height(self.right))

    def _calculate_height(self) -> int:
        """Returns max depth of descendents of this node as the number of child edges. If this is a leaf, the depth is
        0. If it has one level of children, its depth is 1 and so on. This calculates it manually and does not use the
        height field and should only be used for testing since it requires walking the tree.
        """
        depth = 0
        next_level = list(self.get_children())
        while next_level:
            depth += 1
            # count how many iterations it takes from a breadth first search (expanding out each level)
            next_level = [n for node in next_level for n in node.get_children()]
        return depth

    def _calculate_len(self) -> int:
        """Calculate the number of nodes rooted at this node manually. This should only be used for testing since it
        requires walking the tree.
        """
        return sum(1 for _ in self)


class AvlTree(Collection):
    """AVL tree over string keys. Keys are unique; inserting a key that is already present does nothing."""
    __slots__ = ('root', '_size')

    def __init__(self, init: Optional[Iterable[str]] = None):
        """Initialize the tree, optionally with an iterable of keys to insert with balancing."""
        self.root: 'AvlTreeNode | None' = None
        self._size = 0
        if init is not None:
            self.extend(init)

    def __len__(self):
        return self._size

    def __iter__(self):
        if self.root is not None:
            for node in self.root:
                yield node.key

    def __contains__(self, key):
        return isinstance(key, str) and self.search(key) is not None

    def __str__(self):
        return f'{self.__class__.__name__}({list(self.sorted())})'

    def __repr__(self):
        return str(self)

    def __eq__(self, other):
        """Trees are equal if they have the same keys (need not have the same tree structure)."""
        if not isinstance(other, AvlTree):
            return False
        return len(self) == len(other) and list(self.sorted()) == list(other.sorted())

    def size(self) -> int:
        """Number of keys in the tree. This is stored, so it is a constant time operation."""
        return self._size

    def clear(self):
        """Removes all keys from the tree."""
        self.root = None
        self._size = 0

    def sorted(self) -> Iterator[str]:
        """Return an iterator over the keys in the tree in increasing order."""
        if self.root is not None:
            for node in self.root.sorted():
                yield node.key

    def extend(self, keys: Iterable[str]) -> int:
        """Insert an iterable of keys with balancing. Returns the number of keys inserted."""
        inserted = 0
        for key in keys:
            inserted += int(self.insert_balanced(key))
        return inserted

    def search(self, key: str) -> 'AvlTreeNode | None':
        """Return the node holding key, or None if the key is not in the tree."""
        node = self.root
        while node is not None:
            if key == node.key:
                return node
            # lesser keys are always in the left subtree, greater keys in the right subtree
            node = node.left if key < node.key else node.right
        return None

    def _insert_leaf(self, key: str) -> 'AvlTreeNode | None':
        """Attach key as a new leaf in its BST position without rebalancing anything. Return the new node, or None if
        the key was already present.
        """
        if not isinstance(key, str):
            raise TypeError(f'AvlTree keys must be str, not {type(key).__name__}')
        if self.root is None:
            self.root = AvlTreeNode(key)
            self._size = 1
            return self.root
        node = self.root
        while True:
            if key < node.key:
                if node.left is None:
                    node.left = AvlTreeNode(key, node)
                    leaf = node.left
                    break
                node = node.left
            elif key > node.key:
                if node.right is None:
                    node.right = AvlTreeNode(key, node)
                    leaf = node.right
                    break
                node = node.right
            else:
                logger.debug('Key %r is already present, nothing inserted', key)
                return None
        self._size += 1
        return leaf

    def insert_unbalanced(self, key: str) -> bool:
        """Insert a key as a plain binary search tree leaf, ignoring balance. Heights are not maintained. Return True
        if the key was inserted, False if it was already present.
        """
        return self._insert_leaf(key) is not None

    def insert_balanced(self, key: str) -> bool:
        """Insert a key and restore AVL balance on the way back up to the root. The tree must already be balanced.
        Return True if the key was inserted, False if it was already present.
        """
        leaf = self._insert_leaf(key)
        if leaf is None:
            return False
        # the new leaf already has height 0; start at its parent since the leaf itself can't be imbalanced
        self.__fix_path(leaf.parent, self.rebalance)
        return True

    def remove(self, key: str) -> bool:
        """Find a key and remove its node from the tree, then restore AVL balance. Return True if a node was removed,
        False if the key was not present.

        A node with two children is replaced by its in-order predecessor. The predecessor node itself is moved into
        the removed node's place, so keys never move between nodes.
        """
        node = self.search(key)
        if node is None:
            return False
        if node.left is not None and node.right is not None:
            # this must exist since we have a left child, and it never has a right child
            pred = cast(AvlTreeNode, node._get_descendent_predecessor())
            if pred is node.left:
                # the predecessor keeps its left subtree and only takes over the right one
                start = pred
            else:
                # lift the predecessor out first; its left child (if any) takes its old place
                start = cast(AvlTreeNode, pred.parent)
                self.__replace_child(pred, pred.left)
                pred.left = node.left
                node.left.parent = pred
            pred.right = node.right
            node.right.parent = pred
            self.__replace_child(node, pred)
        else:
            # right may be None, but that's fine; this means they're both None and so there are no children to move up
            start = node.parent
            self.__replace_child(node, node.left if node.left is not None else node.right)
        node.parent = node.left = node.right = None
        self._size -= 1
        logger.debug('Removed %r, rebalancing from %r', key, start.key if start is not None else None)
        # removal can need more than one rotation, so every node up to the root gets checked
        self.__fix_path(start, self.__rebalance_after_removal)
        return True

    def __fix_path(self, node: 'AvlTreeNode | None', fix: Callable[[AvlTreeNode], AvlTreeNode]):
        """Call fix on node and on each of its ancestors, bottom-up. The ancestors are collected before anything is
        fixed, so rotations along the way don't change which nodes are visited.
        """
        path = []
        while node is not None:
            path.append(node)
            node = node.parent
        for n in path:
            fix(n)

    def __replace_child(self, node: AvlTreeNode, new_child: 'AvlTreeNode | None'):
        """Put new_child in the slot node occupies under its parent, or make it the root if node is the root."""
        p = node.parent
        if new_child is not None:
            new_child.parent = p
        if p is None:
            self.root = new_child
        elif p.left is node:
            p.left = new_child
        elif p.right is node:
            p.right = new_child
        else:
            raise RuntimeError('Replaced child does not exist in parent')

    def rotate_left(self, x: AvlTreeNode) -> AvlTreeNode:
        """Perform a left rotation across the edge from x to its right child. Raises RotationError if x has no right
        child.

        Returns the new root of this subtree (the former right child).
        """
        # the right node becomes the new root, and the old right node's left node becomes the old root's new right child
        # the old root node becomes the left child of the new root (old right node)
        #    *A                  C
        #   B   C      =>     *A   G
        #  D E F G            B F H I
        #       H I          D E
        # changed height: A (x), C (y); x has to be updated first since it is now a child of y
        y = x.right
        if y is None:
            raise RotationError(f'Left rotation at {x} requires a right child')
        x.right = y.left
        if y.left is not None:
            y.left.parent = x
        self.__replace_child(x, y)
        y.left = x
        x.parent = y
        x._update_node_height()
        y._update_node_height()
        logger.debug('Rotated left at %r, %r is the new subtree root', x.key, y.key)
        return y

    def rotate_right(self, y: AvlTreeNode) -> AvlTreeNode:
        """Perform a right rotation across the edge from y to its left child. Raises RotationError if y has no left
        child.

        Returns the new root of this subtree (the former left child).
        """
        #    *A                  B
        #   B   C      =>      D  *A
        #  D E F G            H I E C
        # H I                      F G
        # changed height: A (y), B (x)
        x = y.left
        if x is None:
            raise RotationError(f'Right rotation at {y} requires a left child')
        y.left = x.right
        if x.right is not None:
            x.right.parent = y
        self.__replace_child(y, x)
        x.right = y
        y.parent = x
        y._update_node_height()
        x._update_node_height()
        logger.debug('Rotated right at %r, %r is the new subtree root', y.key, x.key)
        return x

    def rebalance(self, n: AvlTreeNode) -> AvlTreeNode:
        """Update the height of n and rotate if n is out of balance. None of n's descendents may be out of balance.

        Return the node now at n's position (n itself if no rotation occured).
        """
        n._update_node_height()
        balance = balance_factor(n)
        if balance < -1:
            # left heavy; a left child that is not strictly left heavy needs a double rotation
            if balance_factor(cast(AvlTreeNode, n.left)) < 0:
                return self.rotate_right(n)
            self.rotate_left(cast(AvlTreeNode, n.left))
            return self.rotate_right(n)
        elif balance > 1:
            # right heavy
            if balance_factor(cast(AvlTreeNode, n.right)) < 0:
                self.rotate_right(cast(AvlTreeNode, n.right))
                return self.rotate_left(n)
            return self.rotate_left(n)
        # otherwise perform no rotation
        return n

    def __rebalance_after_removal(self, n: AvlTreeNode) -> AvlTreeNode:
        """Same as rebalance, except a left heavy node whose left child is level gets a single rotation. Only removal
        can produce that shape, and a double rotation there would leave the old left child out of balance.
        """
        n._update_node_height()
        if balance_factor(n) < -1 and balance_factor(cast(AvlTreeNode, n.left)) == 0:
            return self.rotate_right(n)
        return self.rebalance(n)

    bst_insert = insert_unbalanced
    avl_insert = insert_balanced
    insert = insert_balanced
    delete = remove

    def print_structure(self, file: Optional[TextIO] = None, indent: int = 8,
                        node_to_str: Callable[[AvlTreeNode], str] = lambda n: f'{n.key}({n.height})'):
        """Print a sideways sketch of the tree: the root is at the left, the right subtree is up and the left subtree
        is down. Each level is indented by indent spaces. Writes to file, or stdout if it is None. Prints nothing for
        an empty tree.
        """
        if file is None:
            file = sys.stdout
        stack: list[tuple[AvlTreeNode, int]] = []
        node, level = self.root, 0
        # reverse in-order walk: as far right as possible first
        while stack or node is not None:
            while node is not None:
                stack.append((node, level))
                node, level = node.right, level + 1
            node, level = stack.pop()
            print(' ' * (indent * level) + node_to_str(node), file=file)
            node, level = node.left, level + 1

    def check_invariants(self):
        """Check every AVL invariant over the whole tree. Will throw an AssertionError on the first violation. This
        recalculates heights by walking the tree, so it should only be used for testing.
        """
        if self.root is None:
            assert self._size == 0, f'empty tree has size {self._size}'
            return
        assert self.root.parent is None, 'root has a parent'
        count = 0
        for node in self.root:
            count += 1
            # the parent should also have that node as one of its children
            for child in node.get_children():
                assert child.parent is node, f'{child} does not point back to {node}'
            assert node.height == node._calculate_height(), f'{node} caches height {node.height}'
            assert abs(balance_factor(node)) <= 1, f'{node} has balance {balance_factor(node)}'
        assert count == self._size, f'{count} nodes reachable but size is {self._size}'
        keys = list(self.sorted())
        assert all(a < b for a, b in zip(keys, keys[1:])), 'keys are out of order'

    @staticmethod
    def test(iters=1, iters_per_iter=1000, delete_prob=.1, print_time=True, print_tree=False):
        """Run tests. Will throw an AssertionError if there is an error."""
        import random
        import string
        import time

        def random_key():
            return ''.join(random.choices(string.ascii_lowercase, k=random.randint(1, 4)))

        start_time = time.time()
        for _ in range(iters):
            keys: set[str] = set()
            tree = AvlTree()
            # the tree should start out empty
            assert(len(tree) == 0)
            assert(tree.root is None)
            # insert and remove a group of keys, adding them both to the tree and to a set
            for _ in range(iters_per_iter):
                if random.random() <= delete_prob:
                    if len(keys) > 0:
                        # making a random choice from a set is a O(N) operation, so this is inefficient
                        # but for a test, it's fine
                        key = random.choice(tuple(keys))
                        assert(tree.remove(key))
                        keys.remove(key)
                else:
                    key = random_key()
                    already_exists = key in keys
                    assert(tree.insert_balanced(key) != already_exists)
                    keys.add(key)
            # they should now have the same number of elements and when sorted should be the same
            assert(len(tree) == len(keys))
            assert(list(tree.sorted()) == sorted(keys))
            tree.check_invariants()
            if print_tree:
                tree.print_structure()
            for key in keys:
                # the key should not be inserted (since it already exists)
                # the key should be found, and be able to be removed
                assert(not tree.insert_balanced(key))
                assert(key in tree)
                assert(tree.search(key) is not None)
                assert(tree.remove(key))
            # after removing everything, the tree should be empty
            assert(len(tree) == 0)
            assert(tree.root is None)
            assert(list(tree) == [])
            assert(bool(tree) == False)
        end_time = time.time()
        total_time = end_time - start_time
        if print_time:
            print(f'Test successful with {iters} iterations and {iters_per_iter} steps per iteration')
            print(f'Total time of {total_time:.2f}s and average time of {(total_time / iters):.2f}s per iteration')


if __name__ == '__main__':
    AvlTree.test()

'''
tree_walker.py - Depth-first walkers over science program documents.
'''

FOLDER_TAGS = ('SpProg', 'SpOR', 'SpAND')


class TreeWalker(object):

    def __init__(self, tree):
        self.input_tree = tree

    def is_a_node(self, node):     pass
    def get_children(self, node):  pass
    def process_node(self, node):  pass
    def finished_node(self, node): pass
    def process_leaf(self, node):  pass
    def recursed(self):            pass
    def derecursed(self):          pass
    def walk(self):                self._walk(self.input_tree)

    def _walk(self, node):
            if self.is_a_node(node):
                self.process_node(node)
                for child in self.get_children(node):
                    self.recursed()
                    self._walk(child)
                    self.derecursed()
                self.finished_node(node)

            else:
                self.process_leaf(node)
                return



class FolderWalker(TreeWalker):
    '''Walks SpProg/SpOR/SpAND folders, tracking the enclosing folders.'''

    def __init__(self, tree):
        TreeWalker.__init__(self, tree)
        self.folders = []
        self.current_depth = 0
        self.max_depth     = 0


    def is_a_node(self, node):
        return node.tag in FOLDER_TAGS


    def get_children(self, node):
        return list(node)


    def process_node(self, node):
        self.folders.append(node)


    def finished_node(self, node):
        self.folders.pop()


    def recursed(self):
        self.current_depth += 1
        if self.current_depth > self.max_depth:
            self.max_depth = self.current_depth


    def derecursed(self):
        self.current_depth -= 1


    def enclosing(self, tag):
        '''Innermost enclosing folder with this tag, or None.'''
        for folder in reversed(self.folders):
            if folder.tag == tag:
                return folder
        return None



class MSBCollector(FolderWalker):
    '''Collects (msb element, enclosing SpOR, innermost folder) tuples in document order.'''

    def __init__(self, tree):
        FolderWalker.__init__(self, tree)
        self.found = []


    def process_leaf(self, node):
        if node.tag == 'SpMSB':
            self.found.append((node, self.enclosing('SpOR'), self.folders[-1]))
